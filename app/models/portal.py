"""
Data models for the patient portal.

- Users mirror accounts on the hosted auth platform (linked by ``auth_id``)
- Passwords are kept only as SHA-256 digests
- Payment methods keep a masked card number; CVVs are never stored
- Audit log is an append-only compliance trail
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.models.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _now():
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# User – portal profile linked to the platform identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    auth_id = Column(String(64), unique=True, nullable=False, comment="Platform user id")
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(64), nullable=False, comment="SHA-256 hex digest")
    user_type = Column(String(32), nullable=False, default="patient")

    phone = Column(String(32))
    address = Column(Text)
    date_of_birth = Column(String(32))
    gender = Column(String(16))
    blood_type = Column(String(8))
    emergency_contact = Column(JSONType)
    medical_info = Column(JSONType)
    medical_license = Column(String(64))
    facility = Column(String(255))
    hmo = Column(String(255))
    profile_image = Column(Text)

    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    payment_methods = relationship("PaymentMethod", back_populates="user", lazy="selectin")

    __table_args__ = (Index("ix_users_email", "email"),)


# ---------------------------------------------------------------------------
# Payment method – masked card on file
# ---------------------------------------------------------------------------
class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    cardholder_name = Column(String(255), nullable=False)
    card_number = Column(String(32), nullable=False, comment="Masked, last four digits only")
    expiry_date = Column(String(5), nullable=False, comment="MM/YY")
    card_type = Column(String(16), nullable=False, default="unknown")
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    user = relationship("User", back_populates="payment_methods")

    __table_args__ = (Index("ix_payment_methods_user", "user_id"),)


# ---------------------------------------------------------------------------
# Payment – charge recorded against a payment method
# ---------------------------------------------------------------------------
class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    payment_method_id = Column(
        Uuid, ForeignKey("payment_methods.id", ondelete="SET NULL"), nullable=True
    )
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, default="completed")
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (Index("ix_payments_user_created", "user_id", "created_at"),)


# ---------------------------------------------------------------------------
# Audit Log – immutable compliance trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(64), nullable=False, comment="create | read | update | delete | login")
    resource_type = Column(String(64), nullable=False)
    resource_id = Column(Uuid, nullable=False)
    detail = Column(JSONType, comment="Context for the action")
    timestamp = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (Index("ix_audit_timestamp", "timestamp"),)
