"""Stripe payment_intent webhook handler."""

import logging
from dataclasses import dataclass
from typing import Any

from theorem_shop.payments.metadata import EMAIL_KEY, is_email_sent

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


@dataclass
class WebhookOutcome:
    event_id: str
    event_type: str
    action: str  # "fulfilled", "already_fulfilled", "logged", "ignored"


class PaymentWebhookHandler:
    """Verifies inbound events and drives paid fulfillment.

    Exceptions other than signature failures propagate so the router can
    answer non-2xx and Stripe redelivers the event later.
    """

    def __init__(self, gateway: Any, fulfillment: Any):
        self.gateway = gateway
        self.fulfillment = fulfillment

    async def handle(self, payload: bytes, signature: str) -> WebhookOutcome:
        event = self.gateway.verify_webhook(payload, signature)
        event_id = event.get("id", "")
        event_type = event.get("type", "")
        intent = event.get("data", {}).get("object", {}) or {}

        if event_type == PAYMENT_SUCCEEDED:
            action = await self._on_succeeded(intent)
        elif event_type == PAYMENT_FAILED:
            metadata = intent.get("metadata") or {}
            logger.warning(
                "Payment failed for %s - no email sent",
                metadata.get(EMAIL_KEY, "unknown"),
                extra={"payment_intent": intent.get("id")},
            )
            action = "logged"
        else:
            logger.info("Ignoring Stripe event type: %s", event_type)
            action = "ignored"

        return WebhookOutcome(event_id=event_id, event_type=event_type, action=action)

    async def _on_succeeded(self, intent: dict[str, Any]) -> str:
        intent_id = intent.get("id", "")
        if is_email_sent(intent.get("metadata") or {}):
            logger.info("Replayed success event for %s; already fulfilled", intent_id)
            return "already_fulfilled"

        receipt = await self.fulfillment.fulfill_payment_intent(intent_id)
        if receipt is None:
            return "already_fulfilled"
        logger.info("Purchase email sent to %s for payment %s", receipt.email, intent_id)
        return "fulfilled"
