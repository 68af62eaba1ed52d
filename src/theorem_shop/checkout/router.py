"""Checkout API router."""

from fastapi import APIRouter, HTTPException, Request

from theorem_shop.checkout.schemas import (
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    IssueCodeRequest,
    IssueCodeResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from theorem_shop.common.security import client_address

router = APIRouter(prefix="/checkout")


def _get_service():
    from theorem_shop.deps import get_checkout_service
    return get_checkout_service()


@router.post("/issue-code", response_model=IssueCodeResponse)
async def issue_code(body: IssueCodeRequest, request: Request):
    svc = _get_service()
    result = await svc.issue_code(body, client_address(request))
    return IssueCodeResponse(cart_hash=result.cart_hash)


@router.post(
    "/verify-code",
    response_model=VerifyCodeResponse,
    response_model_exclude_none=True,
)
async def verify_code(body: VerifyCodeRequest, request: Request):
    svc = _get_service()
    result = await svc.verify_code(body, client_address(request))
    if result.is_free:
        return VerifyCodeResponse(is_free=True, items=result.items)
    return VerifyCodeResponse(
        client_secret=result.client_secret,
        payment_intent_id=result.payment_intent_id,
    )


@router.post("/confirm-payment", response_model=ConfirmPaymentResponse)
async def confirm_payment(body: ConfirmPaymentRequest):
    """Direct fulfillment trigger for environments without webhook delivery."""
    from theorem_shop.deps import get_settings

    if not get_settings().direct_fulfillment_enabled:
        raise HTTPException(status_code=404, detail="Not Found")
    svc = _get_service()
    result = await svc.confirm_payment(body.payment_intent_id)
    return ConfirmPaymentResponse(already_fulfilled=result.already_fulfilled)
