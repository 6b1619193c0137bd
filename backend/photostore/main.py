"""
FastAPI application entry point.
Sets up the API with lifespan events for storage initialization.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from photostore.config import settings
from photostore.api.errors import register_exception_handlers
from photostore.api.router import api_router
from photostore.middleware.metrics_middleware import MetricsMiddleware
from photostore.storage.backend import StorageBackend
from photostore.utils.logging import configure_logging


def create_app(backend: Optional[StorageBackend] = None) -> FastAPI:
    """
    Build the ASGI app.

    Args:
        backend: Storage backend to serve; built from settings when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan context manager for startup/shutdown events.
        - Startup: Configure logging, make sure the bucket exists
        - Shutdown: Release storage connections
        """
        configure_logging('photostore-api', settings.log_level)

        storage = backend or StorageBackend.from_settings(settings)
        try:
            # Fatal on failure: nothing can be uploaded without the bucket
            storage.ensure_bucket()
            app.state.storage = storage

            yield
        finally:
            storage.close()

    app = FastAPI(
        title="Photostore Upload API",
        description="Resumable multipart uploads and presigned URLs for original photos",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(MetricsMiddleware)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Photostore Upload API",
            "version": "0.1.0",
            "environment": settings.environment
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    return app


app = create_app()
