"""
FastAPI application entrypoint.

Run locally:  uvicorn app.main:create_app --factory --reload
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import router
from app.config import Settings, get_settings
from app.context import AppContext, build_context
from app.models.database import Base
from app.services.encryption import EnvelopeError
from app.services.keystore import StorageUnavailable
from app.services.platform import PlatformError

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def register_error_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"success": false, "message": ...}``."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else ""
        return _error(422, f"Invalid value for {field}" if field else "Invalid request")

    @app.exception_handler(EnvelopeError)
    @app.exception_handler(StorageUnavailable)
    async def envelope_error(request: Request, exc: Exception):
        logger.error("Envelope unavailable on %s: %s", request.url.path, type(exc).__name__)
        return _error(500, "Server error")

    @app.exception_handler(PlatformError)
    async def platform_error(request: Request, exc: PlatformError):
        logger.error("Platform error on %s: %s", request.url.path, exc.message)
        return _error(502, "Upstream service error")

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s: %s", request.url.path, type(exc).__name__)
        return _error(500, "Server error")

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return _error(500, "Server error")


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    settings = settings or (context.settings if context else get_settings())
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(levelname)s | %(name)s | %(message)s",
    )
    context = context or build_context(settings)

    app = FastAPI(
        title="Healthcare Portal API",
        description=(
            "Registration, login, profile and payment-method handlers for the "
            "patient portal. Sensitive form fields arrive sealed in an "
            "encryption envelope and are opened server-side."
        ),
        version="1.0.0",
    )
    app.state.context = context
    register_error_handlers(app)
    app.include_router(router, prefix="/api/v1")

    @app.on_event("startup")
    def on_startup():
        Base.metadata.create_all(bind=context.engine)

    @app.on_event("shutdown")
    def on_shutdown():
        context.platform.close()

    return app
