"""CheckoutService — email verification, price check and payment hand-off.

States::

    COLLECTING_EMAIL → CODE_ISSUED → CODE_VERIFIED → FREE_FULFILLED
                                                   → PAYMENT_PENDING → PAYMENT_CONFIRMED

PAYMENT_CONFIRMED is reached from the payment webhook (or, outside
production, the direct confirmation trigger), never from the browser's own
completion callback.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from theorem_shop.catalog.fingerprint import fingerprint
from theorem_shop.catalog.pricing import PriceAuthority, check_declared_total, to_minor_units
from theorem_shop.catalog.schemas import CartItem
from theorem_shop.checkout.schemas import IssueCodeRequest, VerifyCodeRequest
from theorem_shop.common.config import ShopSettings
from theorem_shop.common.exceptions import (
    CartMismatchError,
    EmailDeliveryError,
    FulfillmentError,
    ShopError,
    TooManyRequestsError,
)
from theorem_shop.notifications.templates import verification_code_email
from theorem_shop.payments.metadata import build_intent_metadata
from theorem_shop.verification.code_store import CodeStore, normalize_identity
from theorem_shop.verification.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ISSUE_OPERATION = "issue"
VERIFY_OPERATION = "verify"


class CheckoutState(str, Enum):
    COLLECTING_EMAIL = "collecting_email"
    CODE_ISSUED = "code_issued"
    CODE_VERIFIED = "code_verified"
    FREE_FULFILLED = "free_fulfilled"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_CONFIRMED = "payment_confirmed"


@dataclass
class IssueResult:
    state: CheckoutState
    cart_hash: str


@dataclass
class VerifyResult:
    state: CheckoutState
    total: Decimal
    items: list[CartItem]
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None

    @property
    def is_free(self) -> bool:
        return self.state == CheckoutState.FREE_FULFILLED


@dataclass
class ConfirmResult:
    state: CheckoutState
    already_fulfilled: bool


class CheckoutService:
    """Drives one buyer through the checkout state machine."""

    def __init__(
        self,
        settings: ShopSettings,
        code_store: CodeStore,
        rate_limiter: RateLimiter,
        price_authority: PriceAuthority,
        email_sender: Any,
        gateway: Any,
        fulfillment: Any,
    ):
        self.settings = settings
        self.code_store = code_store
        self.rate_limiter = rate_limiter
        self.price_authority = price_authority
        self.email_sender = email_sender
        self.gateway = gateway
        self.fulfillment = fulfillment

    def _enforce_rate_limit(self, operation: str, client: str, max_requests: int) -> None:
        decision = self.rate_limiter.check(
            f"{operation}:{client}",
            max_requests,
            self.settings.rate_limit_window_seconds,
        )
        if not decision.allowed:
            logger.warning(
                "Rate limit hit",
                extra={"operation": operation, "client": client},
            )
            raise TooManyRequestsError(decision.retry_after_seconds or 1)

    # ── COLLECTING_EMAIL → CODE_ISSUED ──

    async def issue_code(self, request: IssueCodeRequest, client: str) -> IssueResult:
        self._enforce_rate_limit(ISSUE_OPERATION, client, self.settings.issue_rate_limit)

        email = normalize_identity(request.email)
        cart_hash = fingerprint(request.items)
        code = self.code_store.issue(email, cart_hash)

        subject, html = verification_code_email(
            self.settings.shop_name,
            code=code,
            item_count=len(request.items),
            total=request.cart_total,
            ttl_minutes=self.settings.code_ttl_seconds // 60,
        )
        if not await self.email_sender.send(email, subject, html):
            self.code_store.delete(email)
            raise EmailDeliveryError("Failed to send verification code")

        logger.info("Verification code sent", extra={"email": email, "items": len(request.items)})
        return IssueResult(state=CheckoutState.CODE_ISSUED, cart_hash=cart_hash)

    # ── CODE_ISSUED → CODE_VERIFIED → FREE_FULFILLED | PAYMENT_PENDING ──

    async def verify_code(self, request: VerifyCodeRequest, client: str) -> VerifyResult:
        self._enforce_rate_limit(VERIFY_OPERATION, client, self.settings.verify_rate_limit)

        email = normalize_identity(request.email)
        cart_hash = fingerprint(request.items)
        if request.cart_hash != cart_hash:
            raise CartMismatchError()

        self.code_store.verify(email, request.code, cart_hash)

        # Past this point the code is consumed; undo that if the checkout
        # cannot proceed so only the attempt increment remains.
        try:
            quote = await self.price_authority.quote(request.items)
            check_declared_total(quote, request.total)
        except ShopError:
            self.code_store.release(email)
            raise

        if quote.is_free:
            return await self._fulfill_free(email, quote.lines)

        try:
            return await self._create_payment(email, cart_hash, quote.total, quote.lines)
        except ShopError:
            self.code_store.release(email)
            raise

    async def _fulfill_free(self, email: str, items: list[CartItem]) -> VerifyResult:
        try:
            await self.fulfillment.fulfill(email, items, is_free=True)
        except FulfillmentError:
            # No money changed hands; the checkout still succeeds.
            logger.exception("Free-order email failed", extra={"email": email})
        self.code_store.delete(email)
        return VerifyResult(
            state=CheckoutState.FREE_FULFILLED, total=Decimal("0"), items=items,
        )

    async def _create_payment(
        self, email: str, cart_hash: str, total: Decimal, items: list[CartItem],
    ) -> VerifyResult:
        metadata = build_intent_metadata(
            email,
            cart_hash,
            items,
            chunk_size=self.settings.metadata_chunk_size,
            title_max=self.settings.metadata_title_max,
        )
        intent = await self.gateway.create_payment_intent(
            amount=to_minor_units(total),
            currency=self.settings.currency,
            email=email,
            metadata=metadata,
            description=f"Purchase of {len(items)} maths note(s)",
        )
        logger.info(
            "Payment intent created",
            extra={"email": email, "payment_intent": intent.id, "amount": intent.amount},
        )
        return VerifyResult(
            state=CheckoutState.PAYMENT_PENDING,
            total=total,
            items=items,
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
        )

    # ── PAYMENT_PENDING → PAYMENT_CONFIRMED (direct trigger) ──

    async def confirm_payment(self, payment_intent_id: str) -> ConfirmResult:
        """Fulfill a paid intent without waiting for the webhook.

        Only for environments where webhooks cannot reach the service; it
        shares the webhook's already-sent check so both may fire safely.
        """
        receipt = await self.fulfillment.fulfill_payment_intent(payment_intent_id)
        return ConfirmResult(
            state=CheckoutState.PAYMENT_CONFIRMED, already_fulfilled=receipt is None,
        )
