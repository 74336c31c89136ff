"""Membership API FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api.routers import create_api_router
from .common.exceptions import register_exception_handlers
from .common.logging import setup_logging
from .common.middleware import register_middleware
from .lifecycles import create_application_lifespan
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the membership FastAPI application."""
    # Settings + logging first so everything else uses the configured root logger.
    settings = settings or get_settings()
    setup_logging(settings)

    docs_enabled = settings.api_docs_enabled
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=settings.docs_url if docs_enabled else None,
        redoc_url=settings.redoc_url if docs_enabled else None,
        openapi_url=settings.openapi_url if docs_enabled else None,
        debug=settings.debug,
        lifespan=create_application_lifespan(settings=settings),
    )

    register_exception_handlers(app)
    register_middleware(app)
    app.include_router(create_api_router())
    if docs_enabled:
        logger.info(
            "api.docs.enabled",
            extra={"docs_url": settings.docs_url, "openapi_url": settings.openapi_url},
        )
    return app


__all__ = ["create_app"]
