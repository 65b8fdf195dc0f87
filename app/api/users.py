"""Profile routes for the signed-in user."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.context import AppContext, get_context, get_db
from app.models.portal import User
from app.schemas.api import (
    EmergencyContactResponse,
    MedicalInfoResponse,
    ProfileImageResponse,
    ProfileResponse,
    ProfileUpdateRequest,
)
from app.services.audit import actor_for, log_action
from app.services.platform import PlatformError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

PROFILE_IMAGE_BUCKET = "profile-images"

_PROFILE_COLUMNS = {
    "name": "name",
    "phone": "phone",
    "address": "address",
    "dateOfBirth": "date_of_birth",
    "gender": "gender",
    "bloodType": "blood_type",
}


def _save(db: Session, user: User, fields: list[str]) -> None:
    log_action(
        db,
        actor=actor_for(user),
        action="update",
        resource_type="User",
        resource_id=user.id,
        detail={"fields": fields},
    )
    db.commit()
    db.refresh(user)


@router.get("/profile", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user)):
    return ProfileResponse.model_validate(user)


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        raise HTTPException(status_code=400, detail="Name cannot be empty")
    for field, value in changes.items():
        setattr(user, _PROFILE_COLUMNS[field], value)
    _save(db, user, sorted(_PROFILE_COLUMNS[f] for f in changes))
    return ProfileResponse.model_validate(user)


@router.put("/emergency-contact", response_model=EmergencyContactResponse)
def update_emergency_contact(
    contact: dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user.emergency_contact = contact
    _save(db, user, ["emergency_contact"])
    return EmergencyContactResponse(emergencyContact=user.emergency_contact)


@router.put("/medical-info", response_model=MedicalInfoResponse)
def update_medical_info(
    medical_info: dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user.medical_info = medical_info
    _save(db, user, ["medical_info"])
    return MedicalInfoResponse(medicalInfo=user.medical_info)


@router.post("/profile-image", response_model=ProfileImageResponse)
def upload_profile_image(
    profileImage: UploadFile | None = File(default=None),
    ctx: AppContext = Depends(get_context),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if profileImage is None or not profileImage.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    object_name = f"{user.id}-{int(time.time() * 1000)}-{profileImage.filename}"
    try:
        url = ctx.platform.upload_object(
            PROFILE_IMAGE_BUCKET,
            object_name,
            profileImage.file.read(),
            profileImage.content_type or "application/octet-stream",
        )
    except PlatformError as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    user.profile_image = url
    _save(db, user, ["profile_image"])
    logger.info("Stored profile image for user %s", user.id)
    return ProfileImageResponse(profileImage=url)
