"""Stripe webhook endpoint."""

import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from theorem_shop.common.exceptions import InvalidSignatureError, ValidationError
from theorem_shop.common.schemas import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def _get_handler():
    from theorem_shop.deps import get_webhook_handler
    return get_webhook_handler()


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
):
    """Handle Stripe payment_intent events.

    200 once handled (or a harmless replay); 400 on a bad signature; 500 on
    any other failure so Stripe retries.
    """
    body = await request.body()
    try:
        outcome = await _get_handler().handle(body, stripe_signature)
    except (InvalidSignatureError, ValidationError) as e:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=e.message, code=e.code).model_dump(by_alias=True, exclude_none=True),
        )
    except Exception:
        logger.exception("Webhook processing failed")
        return JSONResponse(
            status_code=500,
            content={"error": "Webhook processing failed", "code": "WEBHOOK_FAILED"},
        )

    logger.info(
        "Stripe event handled",
        extra={"event_id": outcome.event_id, "event_type": outcome.event_type, "action": outcome.action},
    )
    return {"received": True}
