from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from community_chat.api.middleware.correlation_id import CorrelationIdMiddleware
from community_chat.api.v1.routers import chats, conversations, health, ws
from community_chat.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from community_chat.config import settings
from community_chat.infrastructure.bus.redis_pubsub import (
    RedisFanoutPublisher,
    RedisPubSubSubscriber,
    hub_dispatcher,
)
from community_chat.infrastructure.db.session import dispose_engine
from community_chat.infrastructure.ws.hub import Hub
from community_chat.infrastructure.ws.session import SessionLimits

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    hub = Hub()
    await hub.start()
    app.state.hub = hub
    app.state.router = hub

    subscriber: RedisPubSubSubscriber | None = None
    if settings.CHAT_FANOUT_MODE == "redis":
        app.state.redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        subscriber = RedisPubSubSubscriber(
            app.state.redis,
            settings.REDIS_PUBSUB_CHANNEL,
            hub_dispatcher(hub),
        )
        await subscriber.start()
        app.state.router = RedisFanoutPublisher(app.state.redis, settings.REDIS_PUBSUB_CHANNEL)
        logger.info("Private messages fan out through Redis")

    yield

    if subscriber is not None:
        await subscriber.stop()
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")
    await hub.stop()
    await dispose_engine()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Community Chat Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session_limits = SessionLimits.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(chats.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})
