# app.py -- FastAPI application wiring the chat relay together
# Single process: WebSocket endpoint + session registry + telemetry publisher.
# Entry point: `chat-relay` CLI.

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .broadcast import Broadcaster
from .config import config
from .dispatcher import ChatServer
from .session import SessionRegistry
from .telemetry import TelemetryPublisher
from .transport import WebSocketTransport

log = logging.getLogger(__name__)


def build_server(transport: WebSocketTransport) -> ChatServer:
    registry = SessionRegistry()
    broadcaster = Broadcaster(registry, transport.send)
    publisher = TelemetryPublisher(
        broadcaster,
        interval=config.publish_interval,
        sample_count=config.telemetry_samples,
    )
    return ChatServer(
        registry,
        broadcaster,
        publisher,
        stop_publish_on_disconnect=config.stop_publish_on_disconnect,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the relay on startup, stop the publisher on shutdown."""
    transport = WebSocketTransport()
    server = build_server(transport)
    app.state.transport = transport
    app.state.chat_server = server
    app.state.start_time = time.time()

    log.info("Chat relay started -- ws://%s:%d/api/ws", config.web_host, config.web_port)
    yield

    await server.publisher.aclose()
    log.info("Chat relay stopped")


app = FastAPI(title="Chat Relay", version="0.1.0", lifespan=lifespan)

# Import and include routes (uses dependency injection via app.state)
from .api.routes import router  # noqa: E402

app.include_router(router)


def main() -> None:
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-7s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    uvicorn.run(
        "chat_relay.app:app",
        host=config.web_host,
        port=config.web_port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
