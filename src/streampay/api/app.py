"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from streampay import __version__
from streampay.api.routes import router as draft_router
from streampay.api.schemas import ErrorResponse
from streampay.config.settings import AppConfig
from streampay.engine.client import StreamEngine
from streampay.errors.stream_errors import StreamError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle hooks.

    Initialises the engine (chain clients, draft) on startup and
    gracefully shuts down on exit.
    """
    config: AppConfig = app.state.config
    engine = StreamEngine(config)

    try:
        await engine.initialize()
        app.state.engine = engine
        logger.info("Stream engine started")
        yield
    finally:
        await engine.close()
        logger.info("Stream engine shut down")


def create_app(*, config: AppConfig | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a default config is created
            from environment variables.
    """
    if config is None:
        config = AppConfig()

    app = FastAPI(
        title="streampay",
        version=__version__,
        description="Payment stream parameter computation and submission",
        lifespan=_lifespan,
    )

    # Store config on app.state for lifespan access
    app.state.config = config

    # -- Middleware --
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Error handler --
    @app.exception_handler(StreamError)
    async def _stream_error_handler(request: Request, exc: StreamError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(code=exc.code, message=exc.message).model_dump(),
        )

    # -- Base routes --
    @app.get("/health", tags=["base"])
    async def health() -> dict[str, str]:
        engine: StreamEngine | None = getattr(app.state, "engine", None)
        if engine is None:
            return {"status": "ok", "engine": "not_initialized"}
        return {"status": "ok", **await engine.health_check()}

    app.include_router(draft_router)

    return app
