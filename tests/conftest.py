# conftest.py -- Shared test fixtures

from __future__ import annotations

import json
from collections import defaultdict

import pytest

from chat_relay.broadcast import Broadcaster
from chat_relay.dispatcher import ChatServer
from chat_relay.protocol import Command, CommandType, Response, decode_response, encode_command
from chat_relay.session import SessionRegistry
from chat_relay.telemetry import TelemetryPublisher


class FakeTransport:
    """Records every payload sent per connection id; ids in `failing` raise."""

    def __init__(self) -> None:
        self.sent: dict[str, list[str]] = defaultdict(list)
        self.failing: set[str] = set()

    async def send(self, connection_id: str, payload: str) -> None:
        if connection_id in self.failing:
            raise ConnectionError("connection closed")
        self.sent[connection_id].append(payload)

    def responses(self, connection_id: str) -> list[Response]:
        return [decode_response(p) for p in self.sent[connection_id] if not p.startswith("[")]

    def batches(self, connection_id: str) -> list[list[dict]]:
        return [json.loads(p) for p in self.sent[connection_id] if p.startswith("[")]

    def clear(self) -> None:
        self.sent.clear()


def register(name: str) -> str:
    return encode_command(Command(CommandType.REGISTER, name=name))


def chat(message: str) -> str:
    return encode_command(Command(CommandType.MESSAGE, message=message))


def rename(name: str) -> str:
    return encode_command(Command(CommandType.NAME_CHANGE, name=name))


def poll() -> str:
    return encode_command(Command(CommandType.POLL))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def broadcaster(registry: SessionRegistry, transport: FakeTransport) -> Broadcaster:
    return Broadcaster(registry, transport.send)


@pytest.fixture
def publisher(broadcaster: Broadcaster) -> TelemetryPublisher:
    """Fast publisher: 20ms ticks, small batches."""
    return TelemetryPublisher(broadcaster, interval=0.02, sample_count=5)


@pytest.fixture
def server(
    registry: SessionRegistry, broadcaster: Broadcaster, publisher: TelemetryPublisher
) -> ChatServer:
    return ChatServer(registry, broadcaster, publisher)
