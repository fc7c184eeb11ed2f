from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from signaling_service.api.middleware.timing import RequestTimingMiddleware
from signaling_service.api.v1.routers import health, ws
from signaling_service.config import settings
from signaling_service.infrastructure.rooms.memory import InMemoryRoomRegistry
from signaling_service.infrastructure.ws.manager import ConnectionManager
from signaling_service.services.relay_service import RelayService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    logger.info("Signaling relay ready")

    yield

    await app.state.connections.close_all()
    logger.info("Signaling relay stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Signaling Relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    connections = ConnectionManager()
    app.state.connections = connections
    app.state.relay = RelayService(InMemoryRoomRegistry(), connections)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)

    app.include_router(health.router)
    app.include_router(ws.router)

    return app
