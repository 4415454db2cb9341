"""
Stripe Webhook Service
======================

Applies Stripe webhook events to local payments, bookings and
subscriptions.

Events handled:
- payment_intent.succeeded / payment_failed / canceled / processing
- charge.dispute.created
- customer.subscription.created / updated / deleted / paused / resumed
- invoice.paid / invoice.payment_succeeded / invoice.payment_failed

Handlers return the id of the user whose data changed so the router can
invalidate that user's caches after commit.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
import uuid

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment, PaymentStatus, PaymentType
from app.models.subscription import Subscription, SubscriptionStatus, SubscriptionTier
from app.models.trip import BookingStatus, GroupBooking
from app.models.user import User

logger = logging.getLogger(__name__)


SUBSCRIPTION_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.UNPAID,
    "incomplete": SubscriptionStatus.INACTIVE,
    "incomplete_expired": SubscriptionStatus.INACTIVE,
    "paused": SubscriptionStatus.INACTIVE,
}


def _ts(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _merge_metadata(obj: Any, **values: Any) -> None:
    obj.metadata_ = {**(obj.metadata_ or {}), **values}


class StripeWebhookService:
    """Dispatches verified Stripe events to their handlers."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[Optional[uuid.UUID]]]] = {
            "payment_intent.succeeded": self._on_intent_succeeded,
            "payment_intent.payment_failed": self._on_intent_failed,
            "payment_intent.canceled": self._on_intent_canceled,
            "payment_intent.processing": self._on_intent_processing,
            "charge.dispute.created": self._on_dispute_created,
            "customer.subscription.created": self._on_subscription_event,
            "customer.subscription.updated": self._on_subscription_event,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "customer.subscription.paused": self._on_subscription_event,
            "customer.subscription.resumed": self._on_subscription_event,
            "invoice.paid": self._on_invoice_paid,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_failed,
        }

    def handles(self, event_type: Optional[str]) -> bool:
        return event_type in self._handlers

    async def process_event(self, event: dict[str, Any]) -> Optional[uuid.UUID]:
        """
        Apply one event. Exceptions propagate so the caller can roll back
        and answer 500 (Stripe then redelivers).
        """
        handler = self._handlers.get(event.get("type"))
        if handler is None:
            return None

        obj = event.get("data", {}).get("object", {})
        return await handler(obj)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def _payment_by_intent(self, intent_id: Optional[str]) -> Optional[Payment]:
        if not intent_id:
            return None
        result = await self.db.execute(
            select(Payment)
            .where(Payment.stripe_payment_id == intent_id)
            .with_for_update(of=Payment)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            logger.warning("Webhook for unknown PaymentIntent %s", intent_id)
        return payment

    async def _user_for_customer(
        self,
        customer_id: Optional[str],
        metadata: Optional[dict] = None,
    ) -> Optional[User]:
        user_id = (metadata or {}).get("user_id")
        conditions = []
        if customer_id:
            conditions.append(User.stripe_customer_id == customer_id)
        if user_id:
            try:
                conditions.append(User.user_id == uuid.UUID(user_id))
            except ValueError:
                pass
        if not conditions:
            return None

        result = await self.db.execute(select(User).where(or_(*conditions)))
        return result.scalars().first()

    # -------------------------------------------------------------------------
    # PaymentIntent events
    # -------------------------------------------------------------------------

    async def _on_intent_succeeded(self, intent: dict[str, Any]) -> Optional[uuid.UUID]:
        payment = await self._payment_by_intent(intent.get("id"))
        if payment is None:
            return None

        payment.status = PaymentStatus.SUCCEEDED
        payment.paid_at = payment.paid_at or datetime.now(timezone.utc)
        _merge_metadata(
            payment,
            stripe_payment_method=intent.get("payment_method"),
            amount_received=intent.get("amount_received"),
        )

        if payment.type == PaymentType.TOUR_BOOKING and payment.trip_id:
            await self._confirm_booking(payment)

        logger.info("Payment %s succeeded via webhook", payment.payment_id)
        return payment.user_id

    async def _confirm_booking(self, payment: Payment) -> None:
        booking_id = (payment.metadata_ or {}).get("booking_id")

        stmt = select(GroupBooking).where(
            GroupBooking.trip_id == payment.trip_id,
            GroupBooking.user_id == payment.user_id,
            GroupBooking.status == BookingStatus.PENDING,
        )
        if booking_id:
            try:
                stmt = stmt.where(GroupBooking.booking_id == uuid.UUID(str(booking_id)))
            except ValueError:
                logger.warning(
                    "Ignoring malformed booking_id %r on payment %s", booking_id, payment.payment_id
                )

        result = await self.db.execute(stmt.order_by(GroupBooking.created_at))
        booking = result.scalars().first()
        if booking is None:
            logger.warning("No pending booking for paid trip payment %s", payment.payment_id)
            return

        booking.status = BookingStatus.CONFIRMED
        booking.payment_status = "paid"
        logger.info("Booking %s confirmed by payment %s", booking.booking_id, payment.payment_id)

    async def _on_intent_failed(self, intent: dict[str, Any]) -> Optional[uuid.UUID]:
        payment = await self._payment_by_intent(intent.get("id"))
        if payment is None:
            return None

        error = intent.get("last_payment_error") or {}
        payment.status = PaymentStatus.FAILED
        _merge_metadata(
            payment,
            failure_code=error.get("code"),
            failure_message=error.get("message"),
            decline_code=error.get("decline_code"),
        )
        logger.info("Payment %s failed via webhook: %s", payment.payment_id, error.get("code"))
        return payment.user_id

    async def _on_intent_canceled(self, intent: dict[str, Any]) -> Optional[uuid.UUID]:
        payment = await self._payment_by_intent(intent.get("id"))
        if payment is None:
            return None

        payment.status = PaymentStatus.CANCELLED
        canceled_at = _ts(intent.get("canceled_at"))
        _merge_metadata(
            payment,
            canceled_at=canceled_at.isoformat() if canceled_at else None,
            cancellation_reason=intent.get("cancellation_reason"),
        )
        return payment.user_id

    async def _on_intent_processing(self, intent: dict[str, Any]) -> Optional[uuid.UUID]:
        payment = await self._payment_by_intent(intent.get("id"))
        if payment is None:
            return None

        payment.status = PaymentStatus.PROCESSING
        return payment.user_id

    async def _on_dispute_created(self, dispute: dict[str, Any]) -> Optional[uuid.UUID]:
        payment = await self._payment_by_intent(dispute.get("payment_intent"))
        if payment is None:
            return None

        payment.status = PaymentStatus.FAILED
        _merge_metadata(
            payment,
            dispute={
                "dispute_id": dispute.get("id"),
                "reason": dispute.get("reason"),
                "amount": dispute.get("amount"),
                "status": dispute.get("status"),
            },
        )
        logger.warning("Dispute %s opened on payment %s", dispute.get("id"), payment.payment_id)
        return payment.user_id

    # -------------------------------------------------------------------------
    # Subscription events
    # -------------------------------------------------------------------------

    async def _upsert_subscription(
        self,
        stripe_sub: dict[str, Any],
        status: SubscriptionStatus,
    ) -> Optional[uuid.UUID]:
        user = await self._user_for_customer(stripe_sub.get("customer"), stripe_sub.get("metadata"))
        if user is None:
            logger.warning(
                "Subscription %s for unknown customer %s",
                stripe_sub.get("id"),
                stripe_sub.get("customer"),
            )
            return None

        result = await self.db.execute(
            select(Subscription)
            .where(
                or_(
                    Subscription.stripe_subscription_id == stripe_sub.get("id"),
                    Subscription.user_id == user.user_id,
                )
            )
            .with_for_update(of=Subscription)
        )
        subscription = result.scalars().first()
        if subscription is None:
            subscription = Subscription(user_id=user.user_id)
            self.db.add(subscription)

        items = (stripe_sub.get("items") or {}).get("data") or []
        price_id = items[0].get("price", {}).get("id") if items else None

        subscription.stripe_customer_id = stripe_sub.get("customer")
        subscription.stripe_subscription_id = stripe_sub.get("id")
        subscription.stripe_price_id = price_id or subscription.stripe_price_id
        subscription.status = status
        subscription.tier = (
            SubscriptionTier.CAPTAIN_PREMIUM
            if status == SubscriptionStatus.ACTIVE
            else SubscriptionTier.FREE
        )
        subscription.current_period_start = _ts(stripe_sub.get("current_period_start"))
        subscription.current_period_end = _ts(stripe_sub.get("current_period_end"))
        subscription.cancel_at_period_end = bool(stripe_sub.get("cancel_at_period_end"))
        _merge_metadata(subscription, stripe_status=stripe_sub.get("status"))

        if user.stripe_customer_id is None and stripe_sub.get("customer"):
            user.stripe_customer_id = stripe_sub.get("customer")

        logger.info(
            "Subscription %s for user %s is now %s",
            stripe_sub.get("id"),
            user.user_id,
            status.value,
        )
        return user.user_id

    async def _on_subscription_event(self, stripe_sub: dict[str, Any]) -> Optional[uuid.UUID]:
        status = SUBSCRIPTION_STATUS_MAP.get(stripe_sub.get("status", ""), SubscriptionStatus.INACTIVE)
        return await self._upsert_subscription(stripe_sub, status)

    async def _on_subscription_deleted(self, stripe_sub: dict[str, Any]) -> Optional[uuid.UUID]:
        return await self._upsert_subscription(stripe_sub, SubscriptionStatus.CANCELED)

    # -------------------------------------------------------------------------
    # Invoice events
    # -------------------------------------------------------------------------

    async def _record_invoice(
        self,
        invoice: dict[str, Any],
        status: PaymentStatus,
    ) -> Optional[uuid.UUID]:
        user = await self._user_for_customer(invoice.get("customer"), invoice.get("metadata"))
        if user is None:
            logger.warning("Invoice %s for unknown customer %s", invoice.get("id"), invoice.get("customer"))
            return None

        result = await self.db.execute(
            select(Payment)
            .where(Payment.stripe_invoice_id == invoice.get("id"))
            .with_for_update(of=Payment)
        )
        payment = result.scalar_one_or_none()

        subscription_id = None
        if invoice.get("subscription"):
            sub_result = await self.db.execute(
                select(Subscription.subscription_id).where(
                    Subscription.stripe_subscription_id == invoice.get("subscription")
                )
            )
            subscription_id = sub_result.scalar_one_or_none()

        amount = invoice.get("amount_paid") if status == PaymentStatus.SUCCEEDED else invoice.get("amount_due")

        if payment is None:
            payment = Payment(
                user_id=user.user_id,
                type=PaymentType.SUBSCRIPTION,
                stripe_invoice_id=invoice.get("id"),
                stripe_payment_id=invoice.get("payment_intent"),
                amount=int(amount or 0),
                currency=(invoice.get("currency") or "eur").upper(),
                description="Captain subscription",
                metadata_={},
            )
            self.db.add(payment)

        payment.subscription_id = subscription_id or payment.subscription_id
        payment.status = status
        if status == PaymentStatus.SUCCEEDED:
            payment.paid_at = payment.paid_at or datetime.now(timezone.utc)
        _merge_metadata(payment, invoice_status=invoice.get("status"))

        logger.info("Invoice %s recorded as %s", invoice.get("id"), status.value)
        return user.user_id

    async def _on_invoice_paid(self, invoice: dict[str, Any]) -> Optional[uuid.UUID]:
        return await self._record_invoice(invoice, PaymentStatus.SUCCEEDED)

    async def _on_invoice_failed(self, invoice: dict[str, Any]) -> Optional[uuid.UUID]:
        return await self._record_invoice(invoice, PaymentStatus.FAILED)
