"""Dependency injection singletons for theorem-shop."""

from theorem_shop.admin.auth import MagicLinkService
from theorem_shop.catalog.pricing import PriceAuthority
from theorem_shop.checkout.service import CheckoutService
from theorem_shop.common.config import ShopSettings, get_settings
from theorem_shop.fulfillment.service import FulfillmentService
from theorem_shop.notifications.email_delivery import EmailSender
from theorem_shop.payments.gateway import StripeGateway
from theorem_shop.payments.webhook import PaymentWebhookHandler
from theorem_shop.storage.r2 import R2Storage
from theorem_shop.verification.code_store import InMemoryCodeStore
from theorem_shop.verification.nonce_store import NonceStore
from theorem_shop.verification.rate_limiter import RateLimiter

__all__ = ["ShopSettings", "get_settings"]

_code_store: InMemoryCodeStore | None = None
_rate_limiter: RateLimiter | None = None
_nonce_store: NonceStore | None = None
_storage: R2Storage | None = None
_email_sender: EmailSender | None = None
_gateway: StripeGateway | None = None
_price_authority: PriceAuthority | None = None
_fulfillment: FulfillmentService | None = None
_checkout: CheckoutService | None = None
_webhook_handler: PaymentWebhookHandler | None = None
_magic_link: MagicLinkService | None = None


def get_code_store() -> InMemoryCodeStore:
    global _code_store
    if _code_store is None:
        settings = get_settings()
        _code_store = InMemoryCodeStore(
            ttl_seconds=settings.code_ttl_seconds,
            max_attempts=settings.code_max_attempts,
        )
    return _code_store


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def get_nonce_store() -> NonceStore:
    global _nonce_store
    if _nonce_store is None:
        _nonce_store = NonceStore()
    return _nonce_store


def get_storage() -> R2Storage:
    global _storage
    if _storage is None:
        _storage = R2Storage(get_settings())
    return _storage


def get_email_sender() -> EmailSender:
    global _email_sender
    if _email_sender is None:
        settings = get_settings()
        _email_sender = EmailSender(
            provider=settings.email_provider,
            api_key=settings.email_api_key,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
        )
    return _email_sender


def get_payment_gateway() -> StripeGateway:
    global _gateway
    if _gateway is None:
        settings = get_settings()
        _gateway = StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)
    return _gateway


def get_price_authority() -> PriceAuthority:
    global _price_authority
    if _price_authority is None:
        _price_authority = PriceAuthority(get_storage())
    return _price_authority


def get_fulfillment_service() -> FulfillmentService:
    global _fulfillment
    if _fulfillment is None:
        _fulfillment = FulfillmentService(
            get_settings(), get_storage(), get_email_sender(),
            gateway=get_payment_gateway(),
        )
    return _fulfillment


def get_checkout_service() -> CheckoutService:
    global _checkout
    if _checkout is None:
        _checkout = CheckoutService(
            get_settings(),
            code_store=get_code_store(),
            rate_limiter=get_rate_limiter(),
            price_authority=get_price_authority(),
            email_sender=get_email_sender(),
            gateway=get_payment_gateway(),
            fulfillment=get_fulfillment_service(),
        )
    return _checkout


def get_webhook_handler() -> PaymentWebhookHandler:
    global _webhook_handler
    if _webhook_handler is None:
        _webhook_handler = PaymentWebhookHandler(
            get_payment_gateway(), get_fulfillment_service(),
        )
    return _webhook_handler


def get_magic_link_service() -> MagicLinkService:
    global _magic_link
    if _magic_link is None:
        _magic_link = MagicLinkService(
            get_settings(), get_nonce_store(), get_email_sender(),
        )
    return _magic_link


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _code_store, _rate_limiter, _nonce_store, _storage, _email_sender
    global _gateway, _price_authority, _fulfillment, _checkout, _webhook_handler, _magic_link
    _code_store = None
    _rate_limiter = None
    _nonce_store = None
    _storage = None
    _email_sender = None
    _gateway = None
    _price_authority = None
    _fulfillment = None
    _checkout = None
    _webhook_handler = None
    _magic_link = None
