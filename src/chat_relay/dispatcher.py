# dispatcher.py -- Connection lifecycle and command routing
# The transport calls on_connect / on_message / on_disconnect; handlers mutate
# the SessionRegistry and fan responses out through the Broadcaster.

from __future__ import annotations

import logging

from .broadcast import Broadcaster
from .protocol import (
    Command,
    CommandType,
    DecodeFailure,
    Response,
    decode_command,
    encode_response,
)
from .session import RegistryError, SessionRegistry
from .telemetry import TelemetryPublisher

log = logging.getLogger(__name__)

NAME_MIN_EXCLUSIVE = 3
NAME_MAX_EXCLUSIVE = 25
NAME_LENGTH_ERROR = "Name is of incorrect length."


def validate_name(name: str) -> bool:
    """A name is valid iff 3 < len(name) < 25. No trimming, no charset rules."""
    return NAME_MIN_EXCLUSIVE < len(name) < NAME_MAX_EXCLUSIVE


class ChatServer:
    def __init__(
        self,
        registry: SessionRegistry,
        broadcaster: Broadcaster,
        publisher: TelemetryPublisher,
        *,
        stop_publish_on_disconnect: bool = True,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.publisher = publisher
        self.stop_publish_on_disconnect = stop_publish_on_disconnect
        self._handlers = {
            CommandType.REGISTER: self._register,
            CommandType.MESSAGE: self._chat_message,
            CommandType.NAME_CHANGE: self._name_change,
            CommandType.POLL: self._poll,
        }

    # -- transport callbacks ---------------------------------------------

    def on_connect(self, connection_id: str) -> None:
        try:
            self.registry.add(connection_id)
        except RegistryError as e:
            log.error("Connect aborted, registry invariant violated: %r", e)
            return
        log.info("Client connected: %s", connection_id)

    async def on_disconnect(self, connection_id: str) -> None:
        log.info("Client disconnected: %s", connection_id)
        try:
            session = self.registry.remove(connection_id)
        except RegistryError as e:
            log.error("Disconnect aborted, registry invariant violated: %r", e)
            return

        if session.registered:
            await self._broadcast(Response.disconnect(session.display_name))
        await self._broadcast_roster()

        if self.stop_publish_on_disconnect:
            self.publisher.stop()

    async def on_message(self, connection_id: str, payload: str | bytes) -> None:
        log.debug("Received data from %s", connection_id)
        command = decode_command(payload)
        if isinstance(command, DecodeFailure):
            log.warning("Bad command from %s: %s", connection_id, command.message)
            await self._send_error(connection_id, command.message)
            return

        try:
            await self._handlers[command.type](connection_id, command)
        except RegistryError as e:
            log.error("%s aborted, registry invariant violated: %r", command.type.name, e)

    # -- command handlers ------------------------------------------------

    async def _register(self, connection_id: str, command: Command) -> None:
        name = command.name or ""
        self.registry.lookup(connection_id)
        if not validate_name(name):
            await self._send_error(connection_id, NAME_LENGTH_ERROR)
            return

        # Re-registering simply overwrites; names need not be unique
        self.registry.rename(connection_id, name)
        await self._broadcast(Response.connection(name))
        await self._broadcast_roster()

    async def _chat_message(self, connection_id: str, command: Command) -> None:
        # Unregistered sessions may chat; their name goes out empty
        name = self.registry.display_name(connection_id)
        await self._broadcast(Response.chat(name, command.message or ""))

    async def _name_change(self, connection_id: str, command: Command) -> None:
        new_name = command.name or ""
        old_name = self.registry.display_name(connection_id)
        if not validate_name(new_name):
            await self._send_error(connection_id, NAME_LENGTH_ERROR)
            return

        # Announce under the old name before the roster can show the new one
        await self._broadcast(Response.name_change(old_name, new_name))
        self.registry.rename(connection_id, new_name)
        await self._broadcast_roster()

    async def _poll(self, connection_id: str, command: Command) -> None:
        self.registry.lookup(connection_id)
        if self.publisher.start():
            log.info("Telemetry polling requested by %s", connection_id)

    # -- helpers -----------------------------------------------------------

    async def _broadcast(self, response: Response) -> None:
        await self.broadcaster.broadcast(encode_response(response))

    async def _broadcast_roster(self) -> None:
        await self._broadcast(Response.user_count(self.registry.roster_names()))

    async def _send_error(self, connection_id: str, message: str) -> None:
        await self.broadcaster.send_to(connection_id, encode_response(Response.error(message)))
