"""
Webhooks API Endpoints
======================

Handles webhooks from Stripe.

Authentication:
    Stripe signs each delivery; the ``Stripe-Signature`` header is checked
    against STRIPE_WEBHOOK_SECRET (HMAC-SHA256, 300 s tolerance).

Idempotency:
    Each Stripe event has a unique ``id``. Processed event IDs are stored
    in Redis for 7 days to prevent duplicate processing.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import ErrorCodes, ServiceUnavailableError, ValidationError
from app.db.session import get_db
from app.services.cache import CacheInvalidator, CacheKeys, get_redis
from app.services.stripe_gateway import WebhookSignatureError, verify_webhook_signature
from app.services.stripe_webhooks import StripeWebhookService

logger = logging.getLogger(__name__)

router = APIRouter()

_WEBHOOK_IDEM_TTL = 86400 * 7  # 7 days


async def _is_event_processed(event_id: str) -> bool:
    try:
        client = await get_redis()
        return await client.exists(CacheKeys.stripe_event(event_id)) > 0
    except Exception as exc:
        logger.warning("Redis idempotency check failed: %s", exc)
        return False


async def _mark_event_processed(event_id: str) -> None:
    try:
        client = await get_redis()
        await client.setex(CacheKeys.stripe_event(event_id), _WEBHOOK_IDEM_TTL, "1")
    except Exception as exc:
        logger.warning("Redis idempotency set failed: %s", exc)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
):
    """
    Handle Stripe webhook events.

    Untracked event types and already-processed event ids are acknowledged
    with 200. Processing failures roll back and return 500 so Stripe retries.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise ServiceUnavailableError(
            code=ErrorCodes.PAYMENT_GATEWAY_NOT_CONFIGURED,
            message="Stripe webhooks are not configured",
        )

    body = await request.body()
    try:
        event = verify_webhook_signature(
            body,
            stripe_signature,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    except WebhookSignatureError as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        raise ValidationError(message="Invalid webhook signature", field="Stripe-Signature")

    event_id = event.get("id")
    event_type = event.get("type")
    webhook_service = StripeWebhookService(db)

    if not webhook_service.handles(event_type):
        logger.info("Untracked Stripe event %s (%s), acknowledging", event_type, event_id)
        return {"received": True, "handled": False}

    if event_id and await _is_event_processed(event_id):
        logger.info("Duplicate Stripe event %s, skipping", event_id)
        return {"received": True, "duplicate": True}

    try:
        user_id = await webhook_service.process_event(event)
        await db.commit()
    except Exception:
        logger.exception("Stripe webhook processing error: type=%s event_id=%s", event_type, event_id)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "code": ErrorCodes.INTERNAL_ERROR,
                "message": "Error processing webhook",
            },
        )

    if event_id:
        await _mark_event_processed(event_id)

    if user_id:
        await CacheInvalidator.on_payment_change(str(user_id))
        if event_type.startswith("customer.subscription."):
            await CacheInvalidator.on_subscription_change(str(user_id))

    logger.info("Stripe webhook processed: type=%s event_id=%s", event_type, event_id)
    return {"received": True, "handled": True}
