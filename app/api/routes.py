"""
API surface: health check plus the auth, profile and payment routers.

Every route reaches shared collaborators through ``Depends``; nothing is
imported as a module-level singleton.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api import auth, payments, users
from app.context import AppContext, get_context, get_db
from app.schemas.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()
router.include_router(auth.router)
router.include_router(users.router)
router.include_router(payments.router)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(ctx: AppContext = Depends(get_context), db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        logger.warning("Health check could not reach the database")
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=ctx.settings.ENVIRONMENT,
        database=db_status,
    )
