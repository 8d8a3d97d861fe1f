# broadcast.py -- Fan an encoded payload out to all sessions or a chosen subset
# Delivery is error-isolated per target: one dead socket never blocks the rest.

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Collection

from starlette.websockets import WebSocketDisconnect

from .session import SessionRegistry

log = logging.getLogger(__name__)

# send(connection_id, payload); raises on delivery failure
SendFn = Callable[[str, str], Awaitable[None]]

SEND_ERRORS = (WebSocketDisconnect, RuntimeError, ConnectionError)


class Broadcaster:
    def __init__(self, registry: SessionRegistry, send: SendFn) -> None:
        self.registry = registry
        self._send = send

    async def send_to(self, connection_id: str, payload: str) -> bool:
        """Deliver to a single connection. Returns False if the send failed."""
        try:
            await self._send(connection_id, payload)
        except SEND_ERRORS as e:
            log.warning("Send to %s failed: %s", connection_id, e)
            return False
        log.debug("Data sent to %s", connection_id)
        return True

    async def broadcast(self, payload: str, targets: Collection[str] | None = None) -> int:
        """Send to every live session, or only those whose id is in targets.

        Returns the number of successful deliveries.
        """
        sessions = self.registry.snapshot_all()
        if targets is not None:
            wanted = set(targets)
            sessions = [s for s in sessions if s.connection_id in wanted]
        delivered = 0
        for session in sessions:
            if await self.send_to(session.connection_id, payload):
                delivered += 1
        return delivered
