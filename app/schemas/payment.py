"""
Payment Schemas
===============

Pydantic schemas for payment status, cancellation, retry and confirmation.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class PaymentResponse(BaseModel):
    """Standard envelope for payment endpoints."""

    success: bool = True
    data: dict[str, Any]
    message: Optional[str] = None


class CancelPaymentRequest(BaseModel):
    reason: Literal[
        "duplicate",
        "fraudulent",
        "requested_by_customer",
        "abandoned",
    ] = "requested_by_customer"
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class RetryPaymentRequest(BaseModel):
    payment_method_id: Optional[str] = None
    save_payment_method: bool = False
    return_url: Optional[str] = None
    create_new: bool = False


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)
    payment_method_id: Optional[str] = None
    save_payment_method: bool = False
    return_url: Optional[str] = None
