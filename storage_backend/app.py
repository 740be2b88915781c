"""
FastAPI application entry point for the storage service.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storage_backend.bootstrap import StorageContext
from storage_backend.config import get_settings
from storage_backend.errors import (
    NotFoundError,
    NotInitializedError,
    StorageConnectionError,
    ValidationError,
)
from storage_backend.routes import router

logger = logging.getLogger(__name__)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "type": exc.__class__.__name__},
    )


def create_app(context: Optional[StorageContext] = None) -> FastAPI:
    settings = context.settings if context is not None else get_settings()
    app = FastAPI(title="Storage Service (FastAPI)", version="0.1.0")
    app.state.storage_context = context or StorageContext(settings)
    app.include_router(router, prefix=settings.api_prefix)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(StorageConnectionError)
    async def connection_error_handler(
        request: Request, exc: StorageConnectionError
    ) -> JSONResponse:
        logger.error("Storage backend unavailable: %s", exc)
        return _error(503, exc)

    @app.exception_handler(NotInitializedError)
    async def not_initialized_handler(
        request: Request, exc: NotInitializedError
    ) -> JSONResponse:
        return _error(503, exc)

    return app


app = create_app()
