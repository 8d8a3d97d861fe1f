# protocol.py -- Wire format for commands, responses and telemetry batches
# Inbound commands are decoded into Command (or a DecodeFailure value).
# Outbound responses are a tagged union: one payload dataclass per ResponseType.

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any, Union


class CommandType(IntEnum):
    REGISTER = 0
    MESSAGE = 1
    NAME_CHANGE = 2
    POLL = 3


class ResponseType(IntEnum):
    CONNECTION = 0
    DISCONNECT = 1
    MESSAGE = 2
    NAME_CHANGE = 3
    USER_COUNT = 4
    ERROR = 255


class SampleKind(IntEnum):
    BOOL = 0
    INT = 1
    FLOAT = 2
    STRING = 3


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Command:
    type: CommandType
    name: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class DecodeFailure:
    message: str


# Field each command type requires, if any
_REQUIRED_FIELD = {
    CommandType.REGISTER: "name",
    CommandType.MESSAGE: "message",
    CommandType.NAME_CHANGE: "name",
    CommandType.POLL: None,
}


def decode_command(payload: str | bytes) -> Command | DecodeFailure:
    """Decode a raw inbound payload. Never raises; bad input yields a DecodeFailure."""
    try:
        obj = json.loads(payload)
    except ValueError as e:
        return DecodeFailure(f"Invalid JSON: {e}")

    if not isinstance(obj, dict):
        return DecodeFailure("Command must be a JSON object.")
    if "type" not in obj:
        return DecodeFailure("Command is missing the 'type' field.")

    raw_type = obj["type"]
    if isinstance(raw_type, bool) or not isinstance(raw_type, int):
        return DecodeFailure("Command 'type' must be an integer.")
    try:
        cmd_type = CommandType(raw_type)
    except ValueError:
        return DecodeFailure(f"Unknown command type {raw_type}.")

    field = _REQUIRED_FIELD[cmd_type]
    if field is None:
        return Command(cmd_type)
    value = obj.get(field)
    if not isinstance(value, str):
        return DecodeFailure(f"Command '{field}' must be a string.")
    return Command(cmd_type, **{field: value})


def encode_command(command: Command) -> str:
    data: dict[str, Any] = {"type": int(command.type)}
    if command.name is not None:
        data["name"] = command.name
    if command.message is not None:
        data["message"] = command.message
    return json.dumps(data, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionData:
    name: str


@dataclass(frozen=True)
class DisconnectData:
    name: str


@dataclass(frozen=True)
class MessageData:
    name: str
    message: str


@dataclass(frozen=True)
class NameChangeData:
    message: str


@dataclass(frozen=True)
class UserCountData:
    users: tuple[str, ...]


@dataclass(frozen=True)
class ErrorData:
    message: str


ResponseData = Union[
    ConnectionData, DisconnectData, MessageData, NameChangeData, UserCountData, ErrorData
]

_DATA_TYPES: dict[ResponseType, type] = {
    ResponseType.CONNECTION: ConnectionData,
    ResponseType.DISCONNECT: DisconnectData,
    ResponseType.MESSAGE: MessageData,
    ResponseType.NAME_CHANGE: NameChangeData,
    ResponseType.USER_COUNT: UserCountData,
    ResponseType.ERROR: ErrorData,
}


@dataclass(frozen=True)
class Response:
    type: ResponseType
    data: ResponseData

    def __post_init__(self) -> None:
        expected = _DATA_TYPES[self.type]
        if not isinstance(self.data, expected):
            raise TypeError(
                f"{self.type.name} response needs {expected.__name__}, "
                f"got {type(self.data).__name__}"
            )

    @classmethod
    def connection(cls, name: str) -> Response:
        return cls(ResponseType.CONNECTION, ConnectionData(name))

    @classmethod
    def disconnect(cls, name: str) -> Response:
        return cls(ResponseType.DISCONNECT, DisconnectData(name))

    @classmethod
    def chat(cls, name: str, message: str) -> Response:
        return cls(ResponseType.MESSAGE, MessageData(name, message))

    @classmethod
    def name_change(cls, old_name: str, new_name: str) -> Response:
        return cls(
            ResponseType.NAME_CHANGE, NameChangeData(f"{old_name} is now known as {new_name}")
        )

    @classmethod
    def user_count(cls, users: list[str] | tuple[str, ...]) -> Response:
        return cls(ResponseType.USER_COUNT, UserCountData(tuple(users)))

    @classmethod
    def error(cls, message: str) -> Response:
        return cls(ResponseType.ERROR, ErrorData(message))


def encode_response(response: Response) -> str:
    data = asdict(response.data)
    if isinstance(response.data, UserCountData):
        data["users"] = list(response.data.users)
    return json.dumps({"type": int(response.type), "data": data}, ensure_ascii=False)


def decode_response(payload: str | bytes) -> Response:
    """Parse an encoded response. Raises ValueError on anything malformed."""
    obj = json.loads(payload)
    if not isinstance(obj, dict) or "type" not in obj or not isinstance(obj.get("data"), dict):
        raise ValueError("Response must be an object with 'type' and 'data'")
    try:
        resp_type = ResponseType(obj["type"])
    except ValueError:
        raise ValueError(f"Unknown response type {obj['type']!r}") from None

    fields = obj["data"]
    try:
        if resp_type is ResponseType.USER_COUNT:
            users = fields["users"]
            if not isinstance(users, list):
                raise ValueError("'users' must be a list")
            return Response.user_count(users)
        return Response(resp_type, _DATA_TYPES[resp_type](**fields))
    except (KeyError, TypeError) as e:
        raise ValueError(f"Bad {resp_type.name} payload: {e}") from None


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TelemetrySample:
    tag_name: str
    label: str
    kind: SampleKind
    value: bool | int | float | str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tagName": self.tag_name,
            "label": self.label,
            "kind": int(self.kind),
            "value": self.value,
        }


def encode_samples(samples: list[TelemetrySample]) -> str:
    return json.dumps([s.to_dict() for s in samples], ensure_ascii=False)
