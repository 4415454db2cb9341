"""
Payments API Endpoints
======================

Status sync, cancellation, retry and confirmation of Stripe-backed payments.
All routes are scoped to payments owned by the caller.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rate_limit import create_rate_limit_dependency
from app.db.session import get_db
from app.dependencies import CurrentUser
from app.schemas.common import ErrorResponse
from app.schemas.payment import (
    CancelPaymentRequest,
    ConfirmPaymentRequest,
    PaymentResponse,
    RetryPaymentRequest,
)
from app.services.cache import CacheInvalidator
from app.services.payment_service import PaymentService
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway

router = APIRouter(dependencies=[Depends(create_rate_limit_dependency("payment"))])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Gateway rejected the request"},
    404: {"model": ErrorResponse, "description": "Payment not found"},
    503: {"model": ErrorResponse, "description": "Gateway not configured"},
}


def _service(
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[StripeGateway, Depends(get_stripe_gateway)],
) -> PaymentService:
    return PaymentService(db, gateway)


PaymentServiceDep = Annotated[PaymentService, Depends(_service)]


async def _commit_and_invalidate(service: PaymentService, user_id) -> None:
    """Analytics caches are cleared only once the payment change is committed."""
    await service.db.commit()
    await CacheInvalidator.on_payment_change(str(user_id))


@router.post("/confirm", response_model=PaymentResponse, responses=_ERRORS)
async def confirm_payment(
    body: ConfirmPaymentRequest,
    current_user: CurrentUser,
    service: PaymentServiceDep,
):
    """Confirm a PaymentIntent owned by the caller's Stripe customer."""
    data = await service.confirm_payment(
        current_user,
        payment_intent_id=body.payment_intent_id,
        payment_method_id=body.payment_method_id,
        save_payment_method=body.save_payment_method,
        return_url=body.return_url,
    )
    await _commit_and_invalidate(service, current_user.user_id)
    return PaymentResponse(success=True, data=data)


@router.get("/confirm", response_model=PaymentResponse, responses=_ERRORS)
async def get_confirmation_status(
    current_user: CurrentUser,
    service: PaymentServiceDep,
    payment_intent: str = Query(..., min_length=1),
):
    """Read-only intent status for return-url redirects."""
    data = await service.get_confirmation_status(current_user, payment_intent)
    return PaymentResponse(success=True, data=data)


@router.get("/{payment_id}/status", response_model=PaymentResponse, responses=_ERRORS)
async def get_payment_status(
    payment_id: str,
    current_user: CurrentUser,
    service: PaymentServiceDep,
):
    """
    Reconcile the payment with its PaymentIntent.

    ``payment_id`` may be the local id or the Stripe intent id.
    """
    data = await service.sync_status(payment_id, current_user)
    if data["statusChanged"]:
        await _commit_and_invalidate(service, current_user.user_id)
    return PaymentResponse(success=True, data=data)


@router.post("/{payment_id}/status", response_model=PaymentResponse, responses=_ERRORS)
async def force_sync_payment_status(
    payment_id: str,
    current_user: CurrentUser,
    service: PaymentServiceDep,
):
    data = await service.sync_status(payment_id, current_user, force=True)
    await _commit_and_invalidate(service, current_user.user_id)
    return PaymentResponse(success=True, data=data, message="Payment status synchronized")


@router.post("/{payment_id}/cancel", response_model=PaymentResponse, responses=_ERRORS)
async def cancel_payment(
    payment_id: str,
    current_user: CurrentUser,
    service: PaymentServiceDep,
    body: CancelPaymentRequest = CancelPaymentRequest(),
):
    data = await service.cancel_payment(
        payment_id,
        current_user,
        reason=body.reason,
        note=body.cancellation_reason,
    )
    await _commit_and_invalidate(service, current_user.user_id)
    return PaymentResponse(success=True, data=data, message="Payment cancelled")


@router.get("/{payment_id}/cancel", response_model=PaymentResponse, responses=_ERRORS)
async def get_cancellation_eligibility(
    payment_id: str,
    current_user: CurrentUser,
    service: PaymentServiceDep,
):
    data = await service.get_cancellation_eligibility(payment_id, current_user)
    return PaymentResponse(success=True, data=data)


@router.post("/{payment_id}/retry", response_model=PaymentResponse, responses=_ERRORS)
async def retry_payment(
    payment_id: str,
    current_user: CurrentUser,
    service: PaymentServiceDep,
    body: RetryPaymentRequest = RetryPaymentRequest(),
):
    data = await service.retry_payment(
        payment_id,
        current_user,
        payment_method_id=body.payment_method_id,
        save_payment_method=body.save_payment_method,
        return_url=body.return_url,
        create_new=body.create_new,
    )
    await _commit_and_invalidate(service, current_user.user_id)
    return PaymentResponse(success=True, data=data, message="Payment retry initiated")
