"""
Payment-method and payment routes.

Card number, expiry and CVV arrive sealed. After opening and validating
them, only a masked card number and the expiry are stored; the CVV is
dropped once validated.
"""

from __future__ import annotations

import logging
import re
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, open_field
from app.context import AppContext, get_context, get_db
from app.models.portal import Payment, PaymentMethod, User
from app.schemas.api import (
    AddPaymentMethodResponse,
    MessageResponse,
    PaymentHistoryItem,
    PaymentHistoryResponse,
    PaymentMethodRequest,
    PaymentMethodResponse,
    PaymentMethodsResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
)
from app.schemas.payment import CARD_FIELD_MESSAGES, CARD_SCHEMA, CARD_TYPES_BY_FIRST_DIGIT
from app.services.audit import actor_for, log_action
from app.services.validation import invalid_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

INVALID_CARD_DATA = "Invalid card data format"


def card_type_for(card_number: str) -> str:
    return CARD_TYPES_BY_FIRST_DIGIT.get(card_number[:1], "unknown")


def mask_card_number(card_number: str) -> str:
    return f"**** **** **** {card_number[-4:]}"


def _method_response(method: PaymentMethod) -> PaymentMethodResponse:
    return PaymentMethodResponse(
        id=method.id,
        cardholderName=method.cardholder_name,
        cardNumber=method.card_number,
        expiryDate=method.expiry_date,
        cardType=method.card_type,
    )


def _find_method(db: Session, user: User, method_id: str | None) -> PaymentMethod:
    try:
        key = UUID(str(method_id))
    except ValueError:
        raise HTTPException(status_code=404, detail="Payment method not found")
    method = (
        db.query(PaymentMethod)
        .filter(PaymentMethod.id == key, PaymentMethod.user_id == user.id)
        .first()
    )
    if method is None:
        raise HTTPException(status_code=404, detail="Payment method not found")
    return method


# ---------------------------------------------------------------------------
# Payment methods
# ---------------------------------------------------------------------------

@router.get("/methods", response_model=PaymentMethodsResponse)
def list_payment_methods(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    methods = (
        db.query(PaymentMethod)
        .filter(PaymentMethod.user_id == user.id)
        .order_by(PaymentMethod.created_at)
        .all()
    )
    return PaymentMethodsResponse(methods=[_method_response(m) for m in methods])


@router.post("/methods", response_model=AddPaymentMethodResponse, status_code=201)
def add_payment_method(
    body: PaymentMethodRequest,
    ctx: AppContext = Depends(get_context),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    card_number = open_field(ctx, body.cardNumber, "cardNumber", INVALID_CARD_DATA)
    cvv = open_field(ctx, body.cvv, "cvv", INVALID_CARD_DATA)
    expiry_date = open_field(ctx, body.expiryDate, "expiryDate", INVALID_CARD_DATA)

    card = {
        "cardNumber": re.sub(r"\s", "", card_number),
        "expiryDate": expiry_date.strip(),
        "cvv": cvv.strip(),
    }
    failed = invalid_fields(card, CARD_SCHEMA)
    for field, message in CARD_FIELD_MESSAGES:
        if field in failed:
            raise HTTPException(status_code=400, detail=message)

    method = PaymentMethod(
        user_id=user.id,
        cardholder_name=body.cardholderName,
        card_number=mask_card_number(card["cardNumber"]),
        expiry_date=card["expiryDate"],
        card_type=card_type_for(card["cardNumber"]),
    )
    db.add(method)
    db.flush()
    log_action(
        db,
        actor=actor_for(user),
        action="create",
        resource_type="PaymentMethod",
        resource_id=method.id,
        detail={"card_type": method.card_type},
    )
    db.commit()
    logger.info("Added %s payment method for user %s", method.card_type, user.id)
    return AddPaymentMethodResponse(**_method_response(method).model_dump())


@router.delete("/methods/{method_id}", response_model=MessageResponse)
def delete_payment_method(
    method_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    method = _find_method(db, user, method_id)
    log_action(
        db,
        actor=actor_for(user),
        action="delete",
        resource_type="PaymentMethod",
        resource_id=method.id,
    )
    db.delete(method)
    db.commit()
    return MessageResponse(message="Payment method deleted successfully")


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@router.post("/process", response_model=ProcessPaymentResponse)
def process_payment(
    body: ProcessPaymentRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record a payment against one of the user's methods."""
    if not body.amount or not body.description or not body.paymentMethodId:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if body.amount < 0:
        raise HTTPException(status_code=400, detail="Invalid amount")

    method = _find_method(db, user, body.paymentMethodId)
    # No processor integration yet; payments are recorded as completed.
    payment = Payment(
        user_id=user.id,
        payment_method_id=method.id,
        amount=body.amount,
        description=body.description,
        status="completed",
    )
    db.add(payment)
    db.flush()
    log_action(
        db,
        actor=actor_for(user),
        action="create",
        resource_type="Payment",
        resource_id=payment.id,
        detail={"amount": body.amount},
    )
    db.commit()
    return ProcessPaymentResponse(
        paymentId=payment.id,
        status=payment.status,
        message="Payment processed successfully",
    )


@router.get("/history", response_model=PaymentHistoryResponse)
def payment_history(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    payments = (
        db.query(Payment)
        .filter(Payment.user_id == user.id)
        .order_by(Payment.created_at.desc())
        .all()
    )
    return PaymentHistoryResponse(
        payments=[
            PaymentHistoryItem(
                id=p.id,
                amount=p.amount,
                description=p.description,
                status=p.status,
                date=p.created_at,
            )
            for p in payments
        ]
    )
