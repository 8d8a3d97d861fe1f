# transport.py -- WebSocket side of the relay
# Maps opaque connection ids to live sockets. Single-process only.

from __future__ import annotations

import logging
import uuid

from fastapi import WebSocket

log = logging.getLogger(__name__)


class WebSocketTransport:
    """Tracks accepted WebSockets and delivers text frames by connection id."""

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}

    def __len__(self) -> int:
        return len(self._sockets)

    async def accept(self, ws: WebSocket) -> str:
        await ws.accept()
        connection_id = uuid.uuid4().hex
        self._sockets[connection_id] = ws
        client = ws.client
        log.debug(
            "WebSocket %s accepted from %s (%d total)",
            connection_id,
            f"{client.host}:{client.port}" if client else "unknown",
            len(self._sockets),
        )
        return connection_id

    def release(self, connection_id: str) -> None:
        self._sockets.pop(connection_id, None)
        log.debug("WebSocket %s released (%d total)", connection_id, len(self._sockets))

    async def send(self, connection_id: str, payload: str) -> None:
        ws = self._sockets.get(connection_id)
        if ws is None:
            raise ConnectionError(f"no open socket for {connection_id}")
        await ws.send_text(payload)
