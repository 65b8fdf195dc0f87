"""Audit trail for account, credential and payment events."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.portal import AuditLog, User

logger = logging.getLogger(__name__)


def actor_for(user: User) -> str:
    return f"user:{user.id}"


def log_action(
    db: Session,
    *,
    actor: str,
    action: str,
    resource_type: str,
    resource_id: UUID,
    detail: dict[str, Any] | None = None,
) -> AuditLog:
    """
    Append an audit entry in the caller's transaction.

    ``detail`` must never carry secrets: no passwords, digests, envelopes,
    or card data beyond what is already masked.
    """
    entry = AuditLog(
        actor=actor,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        detail=detail,
    )
    db.add(entry)
    db.flush()
    logger.info("AUDIT: %s %s %s/%s", actor, action, resource_type, resource_id)
    return entry
