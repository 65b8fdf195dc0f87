"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    """Registration form. ``password`` arrives as an envelope string."""
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    password: str | None = None
    userType: str = "patient"
    emergencyContact: dict[str, Any] | None = None
    medicalInfo: dict[str, Any] | None = None
    medicalLicense: str | None = None
    facility: str | None = None
    hmo: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str | None = None


class RefreshRequest(BaseModel):
    refreshToken: str | None = None


class LicenseRequest(BaseModel):
    licenseNumber: str | None = None
    country: str | None = None
    state: str | None = None


class UserResponse(BaseModel):
    """User profile as stored, minus the password digest and platform id."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    user_type: str
    phone: str | None = None
    address: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    blood_type: str | None = None
    emergency_contact: dict[str, Any] | None = None
    medical_info: dict[str, Any] | None = None
    medical_license: str | None = None
    facility: str | None = None
    hmo: str | None = None
    profile_image: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class AuthResponse(BaseModel):
    success: bool = True
    user: UserResponse
    token: str
    refreshToken: str


class TokenResponse(BaseModel):
    success: bool = True
    token: str
    refreshToken: str


class LicenseResponse(BaseModel):
    success: bool = True
    message: str
    validUntil: datetime


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class ProfileResponse(UserResponse):
    success: bool = True


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = None
    address: str | None = None
    dateOfBirth: str | None = None
    gender: str | None = None
    bloodType: str | None = None


class EmergencyContactResponse(BaseModel):
    success: bool = True
    emergencyContact: dict[str, Any] | None


class MedicalInfoResponse(BaseModel):
    success: bool = True
    medicalInfo: dict[str, Any] | None


class ProfileImageResponse(BaseModel):
    success: bool = True
    profileImage: str


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class PaymentMethodRequest(BaseModel):
    """Card form. Number, expiry and CVV arrive as envelope strings."""
    cardholderName: str = Field(..., min_length=1, max_length=255)
    cardNumber: str | None = None
    expiryDate: str | None = None
    cvv: str | None = None


class PaymentMethodResponse(BaseModel):
    id: UUID
    cardholderName: str
    cardNumber: str
    expiryDate: str
    cardType: str


class AddPaymentMethodResponse(PaymentMethodResponse):
    success: bool = True


class PaymentMethodsResponse(BaseModel):
    success: bool = True
    methods: list[PaymentMethodResponse]


class ProcessPaymentRequest(BaseModel):
    amount: float | None = None
    description: str | None = None
    paymentMethodId: str | None = None


class ProcessPaymentResponse(BaseModel):
    success: bool = True
    paymentId: UUID
    status: str
    message: str


class PaymentHistoryItem(BaseModel):
    id: UUID
    amount: float
    description: str
    status: str
    date: datetime


class PaymentHistoryResponse(BaseModel):
    success: bool = True
    payments: list[PaymentHistoryItem]


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

class MessageResponse(BaseModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
