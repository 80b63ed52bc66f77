"""
FastAPI application factory.

Creates and configures the process engine admin API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from process_engine import __version__
from process_engine.api.routes import health_router, router
from process_engine.config import Backend, Settings, get_settings
from process_engine.core.context import EngineContext, create_context
from process_engine.workers.worker import load_registry

logger = logging.getLogger(__name__)


def create_app(
    context: Optional[EngineContext] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Without a context one is built from settings at startup, registering the
    same definition modules a worker would.
    """
    settings = settings or get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the engine context on startup, release Redis on shutdown."""
        logger.info("Starting Process Engine API...")

        owns_context = context is None
        if owns_context:
            registry = load_registry(settings.worker.definition_modules)
            app.state.context = create_context(settings, registry)
        else:
            app.state.context = context
        app.state.settings = settings

        logger.info(f"Process Engine API started - Environment: {settings.environment.value}")

        yield

        logger.info("Shutting down Process Engine API...")

        uses_redis = Backend.REDIS in (settings.queue.backend, settings.store.backend)
        if owns_context and uses_redis:
            from process_engine.storage.redis.connection import close_redis

            close_redis()

        logger.info("Process Engine API shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        description="Admin API for inspecting and steering persisted processes",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(router)

    @app.get("/", tags=["root"])
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "status": "running",
        }

    return app
