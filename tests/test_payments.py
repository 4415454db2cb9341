"""
Payment Tests
=============

Stripe gateway helpers, payment reconciliation and the Stripe webhook
endpoint. The gateway is always mocked; nothing talks to Stripe.
"""

import json
import time
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.config import settings
from app.core.errors import AppException, ErrorCodes, NotFoundError, ValidationError
from app.models.payment import Payment, PaymentStatus, PaymentType
from app.models.trip import BookingStatus, GroupBooking
from app.services.cache import CacheKeys
from app.services.payment_service import PaymentService, map_stripe_status
from app.services.stripe_webhooks import StripeWebhookService
from app.services.stripe_gateway import (
    StripeError,
    WebhookSignatureError,
    _encode_form,
    compute_signature,
    verify_webhook_signature,
)

WEBHOOK_SECRET = "whsec_test"


def make_payment(user_id, status=PaymentStatus.PENDING, stripe_payment_id="pi_123", **overrides):
    values = dict(
        payment_id=uuid.uuid4(),
        user_id=user_id,
        stripe_payment_id=stripe_payment_id,
        type=PaymentType.TOUR_BOOKING,
        amount=5000,
        currency="EUR",
        status=status,
        metadata_={},
    )
    values.update(overrides)
    return Payment(**values)


def first_result(item):
    result = MagicMock()
    result.scalars.return_value.first.return_value = item
    result.scalar_one_or_none.return_value = item
    return result


@pytest.fixture
def gateway():
    gateway = AsyncMock()
    gateway.is_configured = True
    return gateway


def signed_header(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(payload, timestamp, secret)}"


class TestStripeGatewayHelpers:
    def test_form_encoding_flattens_nested_keys(self):
        pairs = _encode_form({
            "amount": 5000,
            "customer": None,
            "metadata": {"user_id": "u1"},
            "automatic_payment_methods": {"enabled": True},
        })
        assert pairs == [
            ("amount", "5000"),
            ("metadata[user_id]", "u1"),
            ("automatic_payment_methods[enabled]", "true"),
        ]

    def test_status_map(self):
        assert map_stripe_status("succeeded", PaymentStatus.PENDING) == PaymentStatus.SUCCEEDED
        assert map_stripe_status("requires_capture", PaymentStatus.PENDING) == PaymentStatus.PROCESSING
        assert map_stripe_status("canceled", PaymentStatus.PENDING) == PaymentStatus.CANCELLED
        assert map_stripe_status("something_new", PaymentStatus.FAILED) == PaymentStatus.FAILED
        assert map_stripe_status(None, PaymentStatus.PROCESSING) == PaymentStatus.PROCESSING


class TestWebhookSignature:
    payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"}).encode()

    def test_valid_signature_returns_event(self):
        event = verify_webhook_signature(self.payload, signed_header(self.payload), WEBHOOK_SECRET)
        assert event["id"] == "evt_1"

    def test_tampered_payload(self):
        header = signed_header(self.payload)
        with pytest.raises(WebhookSignatureError):
            verify_webhook_signature(self.payload + b" ", header, WEBHOOK_SECRET)

    def test_stale_timestamp(self):
        header = signed_header(self.payload, timestamp=int(time.time()) - 3600)
        with pytest.raises(WebhookSignatureError):
            verify_webhook_signature(self.payload, header, WEBHOOK_SECRET)

    def test_missing_or_malformed_header(self):
        with pytest.raises(WebhookSignatureError):
            verify_webhook_signature(self.payload, None, WEBHOOK_SECRET)
        with pytest.raises(WebhookSignatureError):
            verify_webhook_signature(self.payload, "t=abc,v1=", WEBHOOK_SECRET)


class TestPaymentService:
    @pytest.mark.asyncio
    async def test_sync_applies_stripe_status(self, mock_db, gateway, participant):
        payment = make_payment(participant.user_id)
        mock_db.execute.return_value = first_result(payment)
        gateway.retrieve_payment_intent.return_value = {"id": "pi_123", "status": "succeeded", "created": 1735689600}

        result = await PaymentService(mock_db, gateway).sync_status(str(payment.payment_id), participant)

        assert result["statusChanged"] is True
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.paid_at is not None
        assert payment.metadata_["stripe_status"] == "succeeded"
        assert result["statusAnalysis"]["isSuccessful"] is True

    @pytest.mark.asyncio
    async def test_force_sync_reports_previous_status(self, mock_db, gateway, participant):
        payment = make_payment(participant.user_id, status=PaymentStatus.PROCESSING)
        mock_db.execute.return_value = first_result(payment)
        gateway.retrieve_payment_intent.return_value = {"id": "pi_123", "status": "processing"}

        result = await PaymentService(mock_db, gateway).sync_status("pi_123", participant, force=True)

        assert result["statusChanged"] is False
        assert result["previousStatus"] == "PROCESSING"
        assert payment.metadata_["manual_sync"] is True

    @pytest.mark.asyncio
    async def test_missing_payment(self, mock_db, gateway, participant):
        mock_db.execute.return_value = first_result(None)
        with pytest.raises(NotFoundError) as exc_info:
            await PaymentService(mock_db, gateway).sync_status("pi_404", participant)
        assert exc_info.value.detail["code"] == ErrorCodes.PAYMENT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unconfigured_gateway_is_503(self, mock_db, gateway, participant):
        gateway.is_configured = False
        mock_db.execute.return_value = first_result(make_payment(participant.user_id))
        with pytest.raises(AppException) as exc_info:
            await PaymentService(mock_db, gateway).sync_status("pi_123", participant)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connection_error_is_503(self, mock_db, gateway, participant):
        mock_db.execute.return_value = first_result(make_payment(participant.user_id))
        gateway.retrieve_payment_intent.side_effect = StripeError(
            type="api_connection_error", message="Could not reach Stripe",
        )
        with pytest.raises(AppException) as exc_info:
            await PaymentService(mock_db, gateway).sync_status("pi_123", participant)
        assert exc_info.value.status_code == 503
        assert exc_info.value.detail["code"] == ErrorCodes.PAYMENT_GATEWAY_ERROR

    @pytest.mark.asyncio
    async def test_card_error_is_400_with_gateway_details(self, mock_db, gateway, participant):
        mock_db.execute.return_value = first_result(make_payment(participant.user_id))
        gateway.retrieve_payment_intent.side_effect = StripeError(
            type="card_error", message="Your card was declined.", code="card_declined",
            status=402, decline_code="insufficient_funds",
        )
        with pytest.raises(AppException) as exc_info:
            await PaymentService(mock_db, gateway).sync_status("pi_123", participant)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["gateway_error_code"] == "card_declined"
        assert exc_info.value.detail["decline_code"] == "insufficient_funds"

    @pytest.mark.asyncio
    async def test_succeeded_payment_cannot_be_cancelled(self, mock_db, gateway, participant):
        mock_db.execute.return_value = first_result(
            make_payment(participant.user_id, status=PaymentStatus.SUCCEEDED)
        )
        with pytest.raises(ValidationError) as exc_info:
            await PaymentService(mock_db, gateway).cancel_payment("pi_123", participant)
        assert exc_info.value.detail["code"] == ErrorCodes.PAYMENT_NOT_CANCELLABLE
        gateway.cancel_payment_intent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_records_reason(self, mock_db, gateway, participant):
        payment = make_payment(participant.user_id)
        mock_db.execute.return_value = first_result(payment)
        gateway.retrieve_payment_intent.return_value = {"id": "pi_123", "status": "requires_payment_method"}
        gateway.cancel_payment_intent.return_value = {"id": "pi_123", "status": "canceled"}

        result = await PaymentService(mock_db, gateway).cancel_payment(
            "pi_123", participant, reason="duplicate", note="double click",
        )

        assert payment.status == PaymentStatus.CANCELLED
        assert payment.metadata_["cancellation"]["reason"] == "duplicate"
        assert result["refund"] == {"eligible": False}
        gateway.cancel_payment_intent.assert_awaited_once_with("pi_123", "duplicate")

    @pytest.mark.asyncio
    async def test_eligibility_lists_reasons(self, mock_db, gateway, participant):
        mock_db.execute.return_value = first_result(
            make_payment(participant.user_id, status=PaymentStatus.SUCCEEDED)
        )
        gateway.retrieve_payment_intent.return_value = {"status": "succeeded"}

        result = await PaymentService(mock_db, gateway).get_cancellation_eligibility("pi_123", participant)

        assert result["canCancel"] is False
        assert len(result["reasons"]) == 2

    @pytest.mark.asyncio
    async def test_pending_payment_is_not_retryable(self, mock_db, gateway, participant):
        mock_db.execute.return_value = first_result(make_payment(participant.user_id))
        with pytest.raises(ValidationError) as exc_info:
            await PaymentService(mock_db, gateway).retry_payment("pi_123", participant)
        assert exc_info.value.detail["code"] == ErrorCodes.PAYMENT_NOT_RETRYABLE

    @pytest.mark.asyncio
    async def test_retry_of_terminal_intent_creates_new_payment(self, mock_db, gateway, participant):
        payment = make_payment(participant.user_id, status=PaymentStatus.CANCELLED)
        mock_db.execute.return_value = first_result(payment)
        gateway.retrieve_payment_intent.return_value = {"id": "pi_123", "status": "canceled"}
        gateway.create_payment_intent.return_value = {
            "id": "pi_new",
            "status": "requires_payment_method",
            "client_secret": "pi_new_secret",
        }

        result = await PaymentService(mock_db, gateway).retry_payment("pi_123", participant)

        assert result["isNewPayment"] is True
        assert result["client_secret"] == "pi_new_secret"
        new_payment = mock_db.add.call_args.args[0]
        assert new_payment.stripe_payment_id == "pi_new"
        assert new_payment.metadata_["retry_count"] == 1
        assert payment.metadata_["retried"] is True

    @pytest.mark.asyncio
    async def test_retry_reuses_live_intent(self, mock_db, gateway, participant):
        payment = make_payment(participant.user_id, status=PaymentStatus.FAILED, metadata_={"retry_count": 2})
        mock_db.execute.return_value = first_result(payment)
        gateway.retrieve_payment_intent.return_value = {"id": "pi_123", "status": "requires_payment_method"}

        result = await PaymentService(mock_db, gateway).retry_payment("pi_123", participant)

        assert result["isNewPayment"] is False
        assert payment.status == PaymentStatus.PENDING
        assert payment.metadata_["retry_count"] == 3
        gateway.create_payment_intent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confirm_rejects_foreign_intent(self, mock_db, gateway, participant):
        participant.stripe_customer_id = "cus_mine"
        gateway.retrieve_payment_intent.return_value = {"id": "pi_x", "customer": "cus_other"}

        with pytest.raises(NotFoundError):
            await PaymentService(mock_db, gateway).confirm_payment(participant, "pi_x")
        gateway.confirm_payment_intent.assert_not_awaited()


class TestStripeWebhookEndpoint:
    @pytest.fixture(autouse=True)
    def webhook_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)

    @pytest.mark.asyncio
    async def test_bad_signature_is_400(self, client, login, participant):
        login(participant)
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=b"{}",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_untracked_event_is_acknowledged(self, client, login, participant):
        login(participant)
        payload = json.dumps({"id": "evt_2", "type": "customer.created"}).encode()
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": signed_header(payload)},
        )
        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": False}

    @pytest.mark.asyncio
    async def test_intent_succeeded_marks_payment_paid(self, client, login, participant, mock_db, fake_redis):
        login(participant)
        payment = make_payment(participant.user_id, type=PaymentType.SUBSCRIPTION)
        mock_db.execute.return_value = first_result(payment)

        payload = json.dumps({
            "id": "evt_3",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_123", "amount_received": 5000, "payment_method": "pm_1"}},
        }).encode()
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": signed_header(payload)},
        )

        assert response.status_code == 200
        assert response.json()["handled"] is True
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.paid_at is not None
        mock_db.commit.assert_awaited_once()
        fake_redis.setex.assert_any_await(CacheKeys.stripe_event("evt_3"), 86400 * 7, "1")

    @pytest.mark.asyncio
    async def test_duplicate_event_is_skipped(self, client, login, participant, mock_db, fake_redis):
        login(participant)
        fake_redis.exists.return_value = 1

        payload = json.dumps({
            "id": "evt_4",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_123"}},
        }).encode()
        response = await client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": signed_header(payload)},
        )

        assert response.json()["duplicate"] is True
        mock_db.execute.assert_not_awaited()

class TestStripeWebhookService:
    @pytest.mark.asyncio
    async def test_malformed_booking_id_still_confirms_booking(self, mock_db, participant):
        payment = make_payment(
            participant.user_id,
            trip_id=uuid.uuid4(),
            metadata_={"booking_id": "not-a-uuid"},
        )
        booking = GroupBooking(
            booking_id=uuid.uuid4(),
            participants=1,
            total_price=95.0,
            contact_name="x",
            status=BookingStatus.PENDING,
        )
        mock_db.execute.side_effect = [first_result(payment), first_result(booking)]

        user_id = await StripeWebhookService(mock_db).process_event({
            "id": "evt_9",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_123"}},
        })

        assert user_id == participant.user_id
        assert payment.status == PaymentStatus.SUCCEEDED
        assert booking.status == BookingStatus.CONFIRMED



class TestPaymentsAPI:
    @pytest.mark.asyncio
    async def test_unknown_cancel_reason_is_400(self, client, login, participant):
        login(participant)
        response = await client.post("/api/v1/payments/pi_123/cancel", json={"reason": "bogus"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == ErrorCodes.VALIDATION_ERROR
        assert error["field"] == "body.reason"

    @pytest.mark.asyncio
    async def test_cache_cleared_after_commit(self, client, login, participant, mock_db):
        login(participant)
        commits_seen = []

        async def invalidate(user_id):
            commits_seen.append(mock_db.commit.await_count)

        with patch.object(PaymentService, "cancel_payment", AsyncMock(return_value={"status": "CANCELLED"})), \
                patch("app.api.v1.payments.CacheInvalidator.on_payment_change", side_effect=invalidate):
            response = await client.post("/api/v1/payments/pi_123/cancel", json={})

        assert response.status_code == 200
        assert commits_seen == [1]
