"""
Payment Service
===============

Reconciles local ``Payment`` rows with Stripe PaymentIntents.

Handles:
- Status sync (GET) and forced sync (POST) under a row lock
- Cancellation eligibility and cancellation
- Retry of failed/cancelled payments, optionally with a fresh intent
- Client-side confirmation (POST) and return-url status lookups (GET)

Every read-modify-write selects the payment ``FOR UPDATE`` inside the
request transaction, so concurrent syncs and webhook deliveries serialize
on the row.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
import uuid

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ErrorCodes,
    NotFoundError,
    PaymentGatewayError,
    ServiceUnavailableError,
    ValidationError,
)
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.services.stripe_gateway import StripeError, StripeGateway

logger = logging.getLogger(__name__)


# Stripe PaymentIntent.status -> local PaymentStatus
STRIPE_STATUS_MAP: dict[str, PaymentStatus] = {
    "requires_payment_method": PaymentStatus.PENDING,
    "requires_confirmation": PaymentStatus.PENDING,
    "requires_action": PaymentStatus.PENDING,
    "processing": PaymentStatus.PROCESSING,
    "requires_capture": PaymentStatus.PROCESSING,
    "succeeded": PaymentStatus.SUCCEEDED,
    "canceled": PaymentStatus.CANCELLED,
}

CANCELLABLE_LOCAL_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)
CANCELLABLE_STRIPE_STATUSES = (
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "requires_capture",
)
RETRYABLE_STATUSES = (PaymentStatus.FAILED, PaymentStatus.CANCELLED)
CANCELLATION_REASONS = ("duplicate", "fraudulent", "requested_by_customer", "abandoned")


def map_stripe_status(stripe_status: Optional[str], current: PaymentStatus) -> PaymentStatus:
    """Local status for a Stripe status; unknown statuses keep ``current``."""
    if stripe_status is None:
        return current
    return STRIPE_STATUS_MAP.get(stripe_status, current)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _from_unix(ts: Optional[int]) -> datetime:
    if ts is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def serialize_payment(payment: Payment) -> dict[str, Any]:
    return {
        "id": str(payment.payment_id),
        "stripePaymentId": payment.stripe_payment_id,
        "type": payment.type.value,
        "status": payment.status.value,
        "amount": payment.amount,
        "currency": payment.currency,
        "commissionAmount": payment.commission_amount,
        "commissionRate": payment.commission_rate,
        "description": payment.description,
        "tripId": str(payment.trip_id) if payment.trip_id else None,
        "subscriptionId": str(payment.subscription_id) if payment.subscription_id else None,
        "metadata": payment.metadata_ or {},
        "paidAt": payment.paid_at.isoformat() if payment.paid_at else None,
        "createdAt": payment.created_at.isoformat() if payment.created_at else None,
        "updatedAt": payment.updated_at.isoformat() if payment.updated_at else None,
    }


def summarize_intent(intent: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": intent.get("id"),
        "status": intent.get("status"),
        "amount": intent.get("amount"),
        "currency": intent.get("currency"),
        "created": intent.get("created"),
        "lastPaymentError": intent.get("last_payment_error"),
        "nextAction": intent.get("next_action"),
    }


def analyze_status(payment: Payment, intent: dict[str, Any]) -> dict[str, bool]:
    status = payment.status
    return {
        "isSuccessful": status == PaymentStatus.SUCCEEDED,
        "isPending": status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING),
        "isFailed": status == PaymentStatus.FAILED,
        "isCancelled": status == PaymentStatus.CANCELLED,
        "requiresAction": intent.get("status") == "requires_action",
        "canRetry": status in RETRYABLE_STATUSES,
        "canCancel": status in CANCELLABLE_LOCAL_STATUSES,
        "hasErrors": bool(intent.get("last_payment_error")),
    }


class PaymentService:
    """Payment lifecycle operations for the authenticated caller."""

    def __init__(self, db: AsyncSession, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_owned_payment(
        self,
        payment_ref: str,
        user_id: uuid.UUID,
        lock: bool = False,
    ) -> Optional[Payment]:
        """Find a payment of ``user_id`` by primary key or Stripe intent id."""
        conditions = [Payment.stripe_payment_id == payment_ref]
        try:
            conditions.append(Payment.payment_id == uuid.UUID(payment_ref))
        except ValueError:
            pass

        stmt = select(Payment).where(Payment.user_id == user_id, or_(*conditions))
        if lock:
            stmt = stmt.with_for_update(of=Payment)

        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _require_payment_with_intent(
        self,
        payment_ref: str,
        user: User,
    ) -> Payment:
        payment = await self._get_owned_payment(payment_ref, user.user_id, lock=True)
        if payment is None:
            raise NotFoundError(code=ErrorCodes.PAYMENT_NOT_FOUND, message="Payment not found")
        if not payment.stripe_payment_id:
            raise NotFoundError(
                code=ErrorCodes.PAYMENT_NO_GATEWAY_ID,
                message="Payment has no gateway reference",
            )
        self._require_gateway()
        return payment

    def _require_gateway(self) -> None:
        if not self.gateway.is_configured:
            raise ServiceUnavailableError(
                code=ErrorCodes.PAYMENT_GATEWAY_NOT_CONFIGURED,
                message="Payment gateway is not configured",
            )

    @staticmethod
    def _gateway_error(e: StripeError) -> Exception:
        if e.is_connection_error:
            return ServiceUnavailableError(
                code=ErrorCodes.PAYMENT_GATEWAY_ERROR,
                message="Payment gateway is unreachable",
            )
        return PaymentGatewayError(
            message=e.message,
            gateway_error_type=e.type,
            gateway_error_code=e.code,
            decline_code=e.decline_code,
        )

    async def _call(self, coro):
        try:
            return await coro
        except StripeError as e:
            raise self._gateway_error(e) from e

    @staticmethod
    def _merge_metadata(payment: Payment, **values: Any) -> None:
        # Reassign so the JSONB column is flagged dirty
        payment.metadata_ = {**(payment.metadata_ or {}), **values}

    @staticmethod
    def _apply_status(payment: Payment, new_status: PaymentStatus, intent: dict[str, Any]) -> bool:
        if new_status == payment.status:
            return False

        logger.info(
            "Payment %s status %s -> %s",
            payment.payment_id,
            payment.status.value,
            new_status.value,
        )
        payment.status = new_status
        if new_status == PaymentStatus.SUCCEEDED and payment.paid_at is None:
            payment.paid_at = _from_unix(intent.get("created"))
        return True

    # -------------------------------------------------------------------------
    # Status sync
    # -------------------------------------------------------------------------

    async def sync_status(
        self,
        payment_ref: str,
        user: User,
        force: bool = False,
    ) -> dict[str, Any]:
        """
        Refresh a payment's status from its PaymentIntent.

        The row stays locked from read to write; the lock is released when
        the request transaction commits.
        """
        payment = await self._require_payment_with_intent(payment_ref, user)
        previous_status = payment.status

        intent = await self._call(self.gateway.retrieve_payment_intent(payment.stripe_payment_id))
        new_status = map_stripe_status(intent.get("status"), payment.status)
        status_changed = self._apply_status(payment, new_status, intent)

        metadata: dict[str, Any] = {
            "last_status_check": _now_iso(),
            "stripe_status": intent.get("status"),
        }
        if force:
            metadata.update({"manual_sync": True, "force_sync": _now_iso()})
        self._merge_metadata(payment, **metadata)

        await self.db.flush()

        response = {
            "payment": serialize_payment(payment),
            "statusChanged": status_changed,
            "stripe": summarize_intent(intent),
            "statusAnalysis": analyze_status(payment, intent),
        }
        if force:
            response["previousStatus"] = previous_status.value
        return response

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    async def get_cancellation_eligibility(
        self,
        payment_ref: str,
        user: User,
    ) -> dict[str, Any]:
        payment = await self._get_owned_payment(payment_ref, user.user_id)
        if payment is None:
            raise NotFoundError(code=ErrorCodes.PAYMENT_NOT_FOUND, message="Payment not found")

        reasons: list[str] = []
        stripe_status: Optional[str] = None

        if payment.status not in CANCELLABLE_LOCAL_STATUSES:
            reasons.append(f"Payment status {payment.status.value} cannot be cancelled")

        if not payment.stripe_payment_id:
            reasons.append("Payment has no gateway reference")
        elif self.gateway.is_configured:
            intent = await self._call(
                self.gateway.retrieve_payment_intent(payment.stripe_payment_id)
            )
            stripe_status = intent.get("status")
            if stripe_status not in CANCELLABLE_STRIPE_STATUSES:
                reasons.append(f"Gateway status {stripe_status} cannot be cancelled")
        else:
            reasons.append("Payment gateway is not configured")

        return {
            "paymentId": str(payment.payment_id),
            "canCancel": not reasons,
            "reasons": reasons,
            "currentStatus": payment.status.value,
            "stripeStatus": stripe_status,
            "availableReasons": list(CANCELLATION_REASONS),
        }

    async def cancel_payment(
        self,
        payment_ref: str,
        user: User,
        reason: str = "requested_by_customer",
        note: Optional[str] = None,
    ) -> dict[str, Any]:
        payment = await self._require_payment_with_intent(payment_ref, user)

        if payment.status not in CANCELLABLE_LOCAL_STATUSES:
            raise ValidationError(
                message=f"Payment with status {payment.status.value} cannot be cancelled",
                code=ErrorCodes.PAYMENT_NOT_CANCELLABLE,
            )

        intent = await self._call(self.gateway.retrieve_payment_intent(payment.stripe_payment_id))
        if intent.get("status") not in CANCELLABLE_STRIPE_STATUSES:
            raise ValidationError(
                message=f"Gateway status {intent.get('status')} cannot be cancelled",
                code=ErrorCodes.PAYMENT_NOT_CANCELLABLE,
            )

        intent = await self._call(
            self.gateway.cancel_payment_intent(payment.stripe_payment_id, reason)
        )

        payment.status = PaymentStatus.CANCELLED
        self._merge_metadata(
            payment,
            cancellation={
                "reason": reason,
                "note": note,
                "cancelled_at": _now_iso(),
                "cancelled_by": str(user.user_id),
            },
            stripe_status=intent.get("status"),
        )
        await self.db.flush()

        logger.info("Payment %s cancelled by %s (%s)", payment.payment_id, user.user_id, reason)

        return {
            "payment": serialize_payment(payment),
            "stripe": summarize_intent(intent),
            "refund": {"eligible": False},
        }

    # -------------------------------------------------------------------------
    # Retry
    # -------------------------------------------------------------------------

    async def retry_payment(
        self,
        payment_ref: str,
        user: User,
        payment_method_id: Optional[str] = None,
        save_payment_method: bool = False,
        return_url: Optional[str] = None,
        create_new: bool = False,
    ) -> dict[str, Any]:
        """
        Retry a FAILED or CANCELLED payment.

        A fresh intent (and Payment row) is created when asked to, when the
        payment never reached Stripe, or when the old intent is terminal.
        Otherwise the existing intent is reused and the row returns to PENDING.
        """
        payment = await self._get_owned_payment(payment_ref, user.user_id, lock=True)
        if payment is None:
            raise NotFoundError(code=ErrorCodes.PAYMENT_NOT_FOUND, message="Payment not found")

        if payment.status not in RETRYABLE_STATUSES:
            raise ValidationError(
                message=f"Payment with status {payment.status.value} cannot be retried",
                code=ErrorCodes.PAYMENT_NOT_RETRYABLE,
            )

        self._require_gateway()

        metadata = payment.metadata_ or {}
        retry_count = int(metadata.get("retry_count", 0))

        intent: Optional[dict[str, Any]] = None
        needs_new_intent = create_new or not payment.stripe_payment_id
        if not needs_new_intent:
            intent = await self._call(
                self.gateway.retrieve_payment_intent(payment.stripe_payment_id)
            )
            needs_new_intent = intent.get("status") in ("canceled", "succeeded")

        setup_future_usage = "off_session" if save_payment_method else None

        if needs_new_intent:
            intent = await self._call(
                self.gateway.create_payment_intent(
                    amount=payment.amount,
                    currency=payment.currency,
                    customer=user.stripe_customer_id,
                    description=payment.description,
                    metadata={
                        "original_payment_id": str(payment.payment_id),
                        "user_id": str(user.user_id),
                        "is_retry": "true",
                    },
                    setup_future_usage=setup_future_usage,
                )
            )
            target = Payment(
                user_id=payment.user_id,
                subscription_id=payment.subscription_id,
                trip_id=payment.trip_id,
                stripe_payment_id=intent["id"],
                type=payment.type,
                amount=payment.amount,
                currency=payment.currency,
                status=PaymentStatus.PENDING,
                commission_amount=payment.commission_amount,
                commission_rate=payment.commission_rate,
                description=payment.description,
                metadata_={
                    "original_payment_id": str(payment.payment_id),
                    "is_retry": True,
                    "retry_count": retry_count + 1,
                },
            )
            self.db.add(target)
            await self.db.flush()

            self._merge_metadata(
                payment,
                retried=True,
                retry_payment_id=str(target.payment_id),
            )
        else:
            target = payment
            target.status = PaymentStatus.PENDING
            self._merge_metadata(
                target,
                retry_count=retry_count + 1,
                last_retry_at=_now_iso(),
            )

        if payment_method_id:
            intent = await self._call(
                self.gateway.confirm_payment_intent(
                    intent["id"],
                    payment_method=payment_method_id,
                    return_url=return_url,
                    setup_future_usage=setup_future_usage,
                )
            )
            self._apply_status(target, map_stripe_status(intent.get("status"), target.status), intent)

        await self.db.flush()

        logger.info(
            "Payment %s retried as %s (new intent: %s)",
            payment.payment_id,
            target.payment_id,
            needs_new_intent,
        )

        return {
            "payment": serialize_payment(target),
            "isNewPayment": target is not payment,
            "client_secret": intent.get("client_secret"),
            "requiresAction": intent.get("status") == "requires_action",
            "nextAction": intent.get("next_action"),
        }

    # -------------------------------------------------------------------------
    # Confirmation
    # -------------------------------------------------------------------------

    async def _retrieve_owned_intent(self, intent_id: str, user: User) -> dict[str, Any]:
        self._require_gateway()
        intent = await self._call(self.gateway.retrieve_payment_intent(intent_id))

        customer = intent.get("customer")
        if not customer or customer != user.stripe_customer_id:
            # Intents of other customers are indistinguishable from missing ones
            raise NotFoundError(code=ErrorCodes.PAYMENT_NOT_FOUND, message="Payment not found")
        return intent

    async def _payment_for_intent(
        self,
        intent_id: str,
        user: User,
        lock: bool = False,
    ) -> Optional[Payment]:
        stmt = select(Payment).where(
            Payment.stripe_payment_id == intent_id,
            Payment.user_id == user.user_id,
        )
        if lock:
            stmt = stmt.with_for_update(of=Payment)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def confirm_payment(
        self,
        user: User,
        payment_intent_id: str,
        payment_method_id: Optional[str] = None,
        save_payment_method: bool = False,
        return_url: Optional[str] = None,
    ) -> dict[str, Any]:
        intent = await self._retrieve_owned_intent(payment_intent_id, user)
        payment = await self._payment_for_intent(payment_intent_id, user, lock=True)

        if intent.get("status") != "succeeded":
            intent = await self._call(
                self.gateway.confirm_payment_intent(
                    payment_intent_id,
                    payment_method=payment_method_id,
                    return_url=return_url,
                    setup_future_usage="off_session" if save_payment_method else None,
                )
            )

        if payment is not None:
            self._apply_status(
                payment,
                map_stripe_status(intent.get("status"), payment.status),
                intent,
            )
            self._merge_metadata(
                payment,
                stripe_status=intent.get("status"),
                last_confirmation_at=_now_iso(),
            )
            await self.db.flush()
        else:
            logger.warning("Confirmed intent %s has no local payment row", payment_intent_id)

        return {
            "status": intent.get("status"),
            "payment": serialize_payment(payment) if payment else None,
            "nextAction": intent.get("next_action"),
            "lastPaymentError": intent.get("last_payment_error"),
        }

    async def get_confirmation_status(
        self,
        user: User,
        payment_intent_id: str,
    ) -> dict[str, Any]:
        """Read-only view of an intent after a return-url redirect."""
        intent = await self._retrieve_owned_intent(payment_intent_id, user)
        payment = await self._payment_for_intent(payment_intent_id, user)

        mapped = map_stripe_status(
            intent.get("status"),
            payment.status if payment else PaymentStatus.PENDING,
        )

        return {
            "status": intent.get("status"),
            "paymentStatus": mapped.value,
            "requiresAction": intent.get("status") == "requires_action",
            "payment": serialize_payment(payment) if payment else None,
            "nextAction": intent.get("next_action"),
            "lastPaymentError": intent.get("last_payment_error"),
        }
