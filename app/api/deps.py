"""Shared route dependencies: bearer-token users and envelope fields."""

from __future__ import annotations

import logging

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.context import AppContext, get_context, get_db
from app.models.portal import User
from app.services.encryption import DecryptFailure

logger = logging.getLogger(__name__)


def open_field(ctx: AppContext, envelope: str | None, field: str, message: str) -> str:
    """
    Decrypt a sealed form field into a non-empty string.

    Any failure becomes a 400 with ``message``; the cipher's reason only
    reaches the log.
    """
    result = ctx.envelope.decrypt(envelope)
    if isinstance(result, DecryptFailure):
        logger.warning("Rejected sealed field %s: %s", field, result.reason)
        raise HTTPException(status_code=400, detail=message)
    if not isinstance(result.value, str) or not result.value:
        logger.warning("Rejected sealed field %s: empty or non-string value", field)
        raise HTTPException(status_code=400, detail=message)
    return result.value


def get_current_user(
    authorization: str | None = Header(default=None),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
) -> User:
    """Resolve ``Authorization: Bearer <token>`` to the local user row."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    auth_id = ctx.platform.get_user_id(token)
    if not auth_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = db.query(User).filter(User.auth_id == auth_id).first()
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
