"""FastAPI application hosting the Telegram webhook."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from clixen.channels.telegram import TelegramChannel
from clixen.core.gateway import Gateway
from clixen.core.metrics import metrics_generate_latest

logger = logging.getLogger(__name__)


def create_app(
    gateway: Gateway,
    channel: TelegramChannel,
    *,
    metrics_enabled: bool = True,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if on_shutdown is not None:
            logger.info("Draining background work before shutdown")
            await on_shutdown()

    app = FastAPI(title="Clixen Gateway", lifespan=lifespan)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok", "channel": channel.channel_name})

    if metrics_enabled:

        @app.get("/metrics")
        async def metrics() -> Response:
            return Response(content=metrics_generate_latest(), media_type=CONTENT_TYPE_LATEST)

    channel.register_routes(app, gateway.handle)
    return app


__all__ = ["create_app"]
