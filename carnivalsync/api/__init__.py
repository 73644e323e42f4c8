"""carnivalsync REST API — FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from carnivalsync.api.deps import dispose_engine, get_sync_runner, init_session_factory
from carnivalsync.api.errors import register_error_handlers
from carnivalsync.api.middleware.request_id import RequestIDMiddleware
from carnivalsync.api.routers import events, sync
from carnivalsync.core.config import SyncConfig
from carnivalsync.core.logging import setup_logging
from carnivalsync.scheduler import create_scheduler


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: init DB and (optionally) the scheduler. Shutdown: dispose engine."""
    config = SyncConfig.from_env()
    init_session_factory(config)

    scheduler = None
    if config.scheduler_enabled:
        scheduler = create_scheduler(get_sync_runner(), config)
        await scheduler.start()
    yield
    if scheduler is not None:
        await scheduler.stop()
    await dispose_engine()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="carnivalsync",
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(events.router, prefix="/events", tags=["events"])
    app.include_router(sync.router, prefix="/sync", tags=["sync"])

    return app
