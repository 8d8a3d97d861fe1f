# routes.py -- HTTP + WebSocket endpoints
# /api/ws carries the chat protocol; /api/health is for probes.

from __future__ import annotations

import asyncio
import logging
import time

from fastapi import APIRouter, Request, WebSocket

from ..config import config
from ..dispatcher import ChatServer
from ..transport import WebSocketTransport

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_server(request: Request) -> ChatServer:
    """Get the ChatServer from app.state."""
    server = getattr(request.app.state, "chat_server", None)
    if server is None:
        raise RuntimeError("Chat server not initialized")
    return server


@router.get("/health")
def health_check(request: Request) -> dict:
    server = get_server(request)
    start = getattr(request.app.state, "start_time", time.time())
    return {
        "status": "ok",
        "connections": len(server.registry),
        "registered": len(server.registry.roster_names()),
        "publishing": server.publisher.is_running,
        "uptime_s": round(time.time() - start, 1),
    }


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """One coroutine per socket, so each connection's messages are handled in order."""
    server: ChatServer = websocket.app.state.chat_server
    transport: WebSocketTransport = websocket.app.state.transport

    connection_id = await transport.accept(websocket)
    server.on_connect(connection_id)
    timeout = config.idle_timeout or None
    try:
        while True:
            try:
                message = await asyncio.wait_for(websocket.receive(), timeout=timeout)
            except asyncio.TimeoutError:
                log.info("Closing idle connection %s", connection_id)
                await websocket.close(code=1000, reason="Idle timeout")
                break
            if message["type"] == "websocket.disconnect":
                break
            payload = message.get("text")
            if payload is None:
                payload = message.get("bytes") or b""
            await server.on_message(connection_id, payload)
    finally:
        transport.release(connection_id)
        await server.on_disconnect(connection_id)
