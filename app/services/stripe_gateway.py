"""
Stripe Gateway
==============

Thin async client for the Stripe REST API.

Handles:
- PaymentIntent create / retrieve / confirm / cancel over httpx
- Stripe error envelopes mapped to ``StripeError``
- Webhook signature verification (``Stripe-Signature`` header)

Stripe expects ``application/x-www-form-urlencoded`` bodies with nested
keys written as ``metadata[key]=value``; ``_encode_form`` does that
flattening.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class StripeError(Exception):
    """An error returned by (or while talking to) the Stripe API."""

    def __init__(
        self,
        type: str,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        decline_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.type = type
        self.message = message
        self.code = code
        self.status = status
        self.decline_code = decline_code

    @property
    def is_connection_error(self) -> bool:
        return self.type == "api_connection_error"

    def __repr__(self) -> str:
        return f"<StripeError(type={self.type}, code={self.code}, status={self.status})>"


class WebhookSignatureError(ValueError):
    """The ``Stripe-Signature`` header is missing, malformed or does not match."""


def _encode_form(data: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for key, value in data.items():
        if value is None:
            continue
        full_key = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            pairs.extend(_encode_form(value, full_key))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(_encode_form(item, f"{full_key}[{index}]"))
                else:
                    pairs.append((f"{full_key}[{index}]", str(item)))
        elif isinstance(value, bool):
            pairs.append((full_key, "true" if value else "false"))
        else:
            pairs.append((full_key, str(value)))
    return pairs


class StripeGateway:
    """PaymentIntent operations against the Stripe REST API."""

    TIMEOUT_SECONDS = 15.0

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = TIMEOUT_SECONDS,
    ):
        self.secret_key = settings.STRIPE_SECRET_KEY if secret_key is None else secret_key
        self.base_url = (base_url or settings.STRIPE_API_BASE_URL).rstrip("/")
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def _get_headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Perform one Stripe API call.

        Raises:
            StripeError: On an error envelope, a non-JSON body, a timeout or
                a transport failure.
        """
        if not self.is_configured:
            raise StripeError(
                type="configuration_error",
                message="Stripe secret key is not configured",
            )

        url = f"{self.base_url}{path}"

        async with httpx.AsyncClient() as client:
            try:
                response = await client.request(
                    method,
                    url,
                    headers=self._get_headers(idempotency_key),
                    content=str(httpx.QueryParams(_encode_form(data))) if data else None,
                    timeout=self.timeout,
                )
            except httpx.TimeoutException:
                logger.error("Stripe API timeout: %s %s", method, path)
                raise StripeError(
                    type="api_connection_error",
                    message="Timed out talking to Stripe",
                )
            except httpx.HTTPError as e:
                logger.error("Stripe API transport error: %s %s: %s", method, path, e)
                raise StripeError(
                    type="api_connection_error",
                    message="Could not reach Stripe",
                )

        try:
            body = response.json()
        except ValueError:
            logger.error(
                "Stripe API returned non-JSON body (status %d) for %s %s",
                response.status_code,
                method,
                path,
            )
            raise StripeError(
                type="api_error",
                message="Unexpected response from Stripe",
                status=response.status_code,
            )

        if response.status_code >= 400 or "error" in body:
            error = body.get("error", {})
            logger.warning(
                "Stripe API error %d on %s %s: type=%s code=%s",
                response.status_code,
                method,
                path,
                error.get("type"),
                error.get("code"),
            )
            raise StripeError(
                type=error.get("type", "api_error"),
                message=error.get("message", "Stripe request failed"),
                code=error.get("code"),
                status=response.status_code,
                decline_code=error.get("decline_code"),
            )

        return body

    # -------------------------------------------------------------------------
    # PaymentIntents
    # -------------------------------------------------------------------------

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer: Optional[str] = None,
        payment_method: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        setup_future_usage: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create a PaymentIntent.

        Args:
            amount: Amount in minor units (cents)
            currency: ISO currency code; lower-cased for Stripe
        """
        intent = await self._request(
            "POST",
            "/payment_intents",
            data={
                "amount": amount,
                "currency": currency.lower(),
                "customer": customer,
                "payment_method": payment_method,
                "description": description,
                "metadata": metadata,
                "setup_future_usage": setup_future_usage,
                "automatic_payment_methods": {"enabled": True},
            },
            idempotency_key=idempotency_key,
        )
        logger.info("Created PaymentIntent %s (%s %s)", intent.get("id"), amount, currency)
        return intent

    async def retrieve_payment_intent(self, intent_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/payment_intents/{intent_id}")

    async def confirm_payment_intent(
        self,
        intent_id: str,
        payment_method: Optional[str] = None,
        return_url: Optional[str] = None,
        setup_future_usage: Optional[str] = None,
    ) -> dict[str, Any]:
        intent = await self._request(
            "POST",
            f"/payment_intents/{intent_id}/confirm",
            data={
                "payment_method": payment_method,
                "return_url": return_url,
                "setup_future_usage": setup_future_usage,
            },
        )
        logger.info("Confirmed PaymentIntent %s -> %s", intent_id, intent.get("status"))
        return intent

    async def cancel_payment_intent(
        self,
        intent_id: str,
        cancellation_reason: Optional[str] = None,
    ) -> dict[str, Any]:
        intent = await self._request(
            "POST",
            f"/payment_intents/{intent_id}/cancel",
            data={"cancellation_reason": cancellation_reason},
        )
        logger.info("Cancelled PaymentIntent %s (%s)", intent_id, cancellation_reason)
        return intent


# =============================================================================
# Webhook signatures
# =============================================================================

def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp: Optional[int] = None
    signatures: list[str] = []

    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookSignatureError("Invalid timestamp in signature header")
        elif key == "v1" and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise WebhookSignatureError("Malformed signature header")

    return timestamp, signatures


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    """HMAC-SHA256 of ``"{timestamp}.{payload}"`` as Stripe signs it."""
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    payload: bytes,
    sig_header: Optional[str],
    secret: str,
    tolerance: int = 300,
    now: Optional[float] = None,
) -> dict[str, Any]:
    """
    Verify a webhook delivery and return the parsed event.

    Raises:
        WebhookSignatureError: Missing/malformed header, no matching ``v1``
            signature, a timestamp outside ``tolerance`` seconds, or a body
            that is not JSON.
    """
    if not sig_header:
        raise WebhookSignatureError("Missing Stripe-Signature header")

    timestamp, signatures = _parse_signature_header(sig_header)
    expected = compute_signature(payload, timestamp, secret)

    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise WebhookSignatureError("No signature matches the payload")

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        raise WebhookSignatureError("Timestamp outside the tolerance zone")

    try:
        return json.loads(payload.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise WebhookSignatureError("Payload is not valid JSON")


def get_stripe_gateway() -> StripeGateway:
    """FastAPI dependency; overridable in tests."""
    return StripeGateway()
