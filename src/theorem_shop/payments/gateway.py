"""Stripe payment-intent gateway."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import stripe

from theorem_shop.common.exceptions import (
    InvalidSignatureError,
    PaymentProcessorError,
    ValidationError,
)
from theorem_shop.payments.metadata import EMAIL_SENT_KEY

logger = logging.getLogger(__name__)

# Stripe's own default tolerance for webhook timestamps
SIGNATURE_TOLERANCE_SECONDS = 300


@dataclass
class IntentRecord:
    """The parts of a Stripe PaymentIntent this service reads."""

    id: str
    status: str
    amount: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)
    client_secret: Optional[str] = None
    receipt_email: Optional[str] = None


def _plain(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return dict(to_dict())
    return dict(obj)


def _to_record(intent: Any) -> IntentRecord:
    return IntentRecord(
        id=intent.id,
        status=intent.status,
        amount=intent.amount,
        currency=intent.currency,
        metadata={k: str(v) for k, v in _plain(intent.metadata).items()},
        client_secret=getattr(intent, "client_secret", None),
        receipt_email=getattr(intent, "receipt_email", None),
    )


class StripeGateway:
    """Creates, reads and annotates PaymentIntents; verifies webhooks.

    The stripe SDK is blocking, so calls run in a worker thread.
    """

    def __init__(self, secret_key: str, webhook_secret: str = ""):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def _require_key(self) -> None:
        if not self.secret_key:
            logger.error("Stripe secret key is not configured")
            raise PaymentProcessorError(
                "Payment system is not configured. Please contact support."
            )

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        email: str,
        metadata: dict[str, str],
        description: str = "",
    ) -> IntentRecord:
        self._require_key()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=amount,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                description=description,
                receipt_email=email,
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent creation failed: %s", e)
            raise PaymentProcessorError("Failed to create payment") from e
        return _to_record(intent)

    async def retrieve_payment_intent(self, intent_id: str) -> IntentRecord:
        self._require_key()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve, intent_id, api_key=self.secret_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe retrieve failed for %s: %s", intent_id, e)
            raise PaymentProcessorError("Failed to load payment") from e
        return _to_record(intent)

    async def mark_email_sent(self, intent_id: str) -> None:
        """Set the fulfillment flag in the intent's metadata."""
        self._require_key()
        try:
            await asyncio.to_thread(
                stripe.PaymentIntent.modify,
                intent_id,
                api_key=self.secret_key,
                metadata={EMAIL_SENT_KEY: "true"},
            )
        except stripe.StripeError as e:
            logger.error("Stripe metadata update failed for %s: %s", intent_id, e)
            raise PaymentProcessorError("Failed to update payment") from e

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Check the ``Stripe-Signature`` header and decode the event.

        Fails closed: a missing secret rejects every event.
        """
        if not self.webhook_secret:
            logger.error("Stripe webhook secret is not configured")
            raise InvalidSignatureError()
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature or "",
                self.webhook_secret,
                SIGNATURE_TOLERANCE_SECONDS,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning("Stripe webhook signature verification failed: %s", e)
            raise InvalidSignatureError() from e

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise ValidationError("Invalid payload") from e
        if not isinstance(event, dict):
            raise ValidationError("Invalid payload")
        return event
