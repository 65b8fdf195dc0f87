"""
Process-wide collaborators, built once at startup and handed to handlers.

Nothing here lives at module level: ``create_app`` builds one ``AppContext``
and stores it on ``app.state``; route functions reach it through
``Depends(get_context)``.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Iterator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings
from app.models.database import make_engine, make_sessionmaker
from app.services.encryption import Envelope
from app.services.platform import AuthPlatform, SupabasePlatform

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    envelope: Envelope
    engine: Engine
    session_factory: sessionmaker
    platform: AuthPlatform


def build_server_envelope(settings: Settings) -> Envelope:
    """Envelope the handlers use to open client-sealed fields."""
    secret = settings.ENCRYPTION_KEY
    if not secret:
        if settings.is_production:
            raise RuntimeError("ENCRYPTION_KEY must be set in production")
        # Development only: clients of this process cannot be provisioned with it
        logger.warning("ENCRYPTION_KEY not set, using a random per-process key")
        secret = secrets.token_urlsafe(32)
    return Envelope.for_secret(
        secret, settings.ENCRYPTION_SALT.encode("utf-8"), settings.KDF_ITERATIONS
    )


def build_context(
    settings: Settings,
    *,
    engine: Engine | None = None,
    platform: AuthPlatform | None = None,
) -> AppContext:
    if engine is None:
        engine = make_engine(settings.DATABASE_URL)
    if platform is None:
        platform = SupabasePlatform(settings.PLATFORM_URL, settings.PLATFORM_SERVICE_KEY)
    return AppContext(
        settings=settings,
        envelope=build_server_envelope(settings),
        engine=engine,
        session_factory=make_sessionmaker(engine),
        platform=platform,
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""
    db = get_context(request).session_factory()
    try:
        yield db
    finally:
        db.close()
