"""
Registration, login and token routes.

Passwords arrive sealed. Handlers open them with the server envelope,
store only the SHA-256 digest, and pass the plaintext on to the hosted
auth platform.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import open_field
from app.context import AppContext, get_context, get_db
from app.models.portal import User
from app.schemas.api import (
    AuthResponse,
    LicenseRequest,
    LicenseResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from app.services.audit import actor_for, log_action
from app.services.encryption import hash_value, secure_compare
from app.services.platform import PlatformError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

LICENSE_VALIDITY = timedelta(days=365)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    body: RegisterRequest,
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    password = open_field(ctx, body.password, "password", "Invalid password format")
    email = _normalize_email(body.email)

    if db.query(User.id).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="User with this email already exists")

    try:
        auth_id = ctx.platform.sign_up(email, password)
    except PlatformError as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    user = User(
        auth_id=auth_id,
        name=body.name,
        email=email,
        password_hash=hash_value(password),
        user_type=body.userType,
        emergency_contact=body.emergencyContact,
        medical_info=body.medicalInfo,
        medical_license=body.medicalLicense,
        facility=body.facility,
        hmo=body.hmo,
    )
    try:
        db.add(user)
        db.flush()
        log_action(
            db,
            actor=actor_for(user),
            action="create",
            resource_type="User",
            resource_id=user.id,
            detail={"user_type": user.user_type},
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Profile insert failed, removing platform user %s", auth_id)
        try:
            ctx.platform.delete_user(auth_id)
        except PlatformError as exc:
            logger.error("Could not remove platform user %s: %s", auth_id, exc.message)
        raise HTTPException(status_code=400, detail="Could not create user profile")

    session = ctx.platform.sign_in(email, password)
    logger.info("Registered user %s", user.id)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=session.access_token,
        refreshToken=session.refresh_token,
    )


@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    password = open_field(ctx, body.password, "password", "Invalid password format")
    email = _normalize_email(body.email)

    user = db.query(User).filter(User.email == email).first()
    if user is None or not secure_compare(hash_value(password), user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    try:
        session = ctx.platform.sign_in(email, password)
    except PlatformError:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    log_action(
        db,
        actor=actor_for(user),
        action="login",
        resource_type="User",
        resource_id=user.id,
    )
    db.commit()
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=session.access_token,
        refreshToken=session.refresh_token,
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(body: RefreshRequest, ctx: AppContext = Depends(get_context)):
    if not body.refreshToken:
        raise HTTPException(status_code=400, detail="Refresh token is required")
    try:
        session = ctx.platform.refresh(body.refreshToken)
    except PlatformError:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")
    return TokenResponse(token=session.access_token, refreshToken=session.refresh_token)


@router.post("/validate-license", response_model=LicenseResponse)
def validate_license(body: LicenseRequest):
    """
    Format check for a practitioner licence number.
    TODO: call the licensing registry for the given country/state.
    """
    if not body.licenseNumber or len(body.licenseNumber) <= 5:
        raise HTTPException(status_code=400, detail="Invalid license number")
    return LicenseResponse(
        message="License validated successfully",
        validUntil=datetime.now(timezone.utc) + LICENSE_VALIDITY,
    )
