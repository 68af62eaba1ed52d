"""Admin magic-link login and cookie-based sessions."""

import logging
import secrets
from typing import Any, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from starlette.requests import Request

from theorem_shop.common.config import ShopSettings
from theorem_shop.common.exceptions import (
    EmailDeliveryError,
    InvalidTokenError,
    TokenAlreadyUsedError,
    UnauthorizedEmailError,
)
from theorem_shop.notifications.templates import magic_link_email
from theorem_shop.verification.nonce_store import NonceStore

logger = logging.getLogger(__name__)

COOKIE_NAME = "admin_session"
MAGIC_LINK_SALT = "magic-link"
SESSION_SALT = "admin-session"
MAGIC_LINK_TYPE = "magic_link"
SESSION_TYPE = "session"


def _serializer(secret_key: str, salt: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key, salt=salt)


class MagicLinkService:
    """Issues and redeems single-use admin login links."""

    def __init__(self, settings: ShopSettings, nonce_store: NonceStore, email_sender: Any):
        self.settings = settings
        self.nonce_store = nonce_store
        self.email_sender = email_sender

    def create_token(self, email: str) -> str:
        s = _serializer(self.settings.secret_key, MAGIC_LINK_SALT)
        return s.dumps({
            "email": email,
            "nonce": secrets.token_hex(16),
            "type": MAGIC_LINK_TYPE,
        })

    async def send_magic_link(self, email: str) -> str:
        """Email a login link to an allow-listed admin. Returns the link."""
        email = email.strip().lower()
        if email not in self.settings.admin_email_list:
            logger.warning("Magic link requested for unauthorized email %s", email)
            raise UnauthorizedEmailError()

        token = self.create_token(email)
        link = f"{self.settings.base_url}{self.settings.api_prefix}/auth/verify?token={token}"
        subject, html, text = magic_link_email(
            self.settings.shop_name,
            link=link,
            ttl_minutes=self.settings.magic_link_ttl_seconds // 60,
        )
        if not await self.email_sender.send(email, subject, html, text=text):
            raise EmailDeliveryError("Failed to send magic link")
        logger.info("Magic link sent to %s", email)
        return link

    def redeem(self, token: str) -> str:
        """Validate a magic-link token and burn its nonce. Returns the admin email."""
        s = _serializer(self.settings.secret_key, MAGIC_LINK_SALT)
        try:
            payload = s.loads(token, max_age=self.settings.magic_link_ttl_seconds)
        except SignatureExpired:
            raise InvalidTokenError("Token expired")
        except BadSignature:
            raise InvalidTokenError()

        if not isinstance(payload, dict) or payload.get("type") != MAGIC_LINK_TYPE:
            raise InvalidTokenError()
        nonce = payload.get("nonce")
        email = payload.get("email")
        if not nonce or not email:
            raise InvalidTokenError()
        if not self.nonce_store.consume(nonce, self.settings.nonce_retention_seconds):
            raise TokenAlreadyUsedError()
        return email


def create_session_cookie(email: str, settings: ShopSettings) -> str:
    """Sign a session payload and return the cookie value."""
    s = _serializer(settings.secret_key, SESSION_SALT)
    return s.dumps({"email": email, "type": SESSION_TYPE})


def verify_session_cookie(cookie: str, settings: ShopSettings) -> Optional[dict]:
    """Verify and decode a session cookie. Returns payload or None."""
    s = _serializer(settings.secret_key, SESSION_SALT)
    try:
        payload = s.loads(cookie, max_age=settings.admin_session_ttl_seconds)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(payload, dict) or payload.get("type") != SESSION_TYPE:
        return None
    return payload


def get_admin_session(request: Request) -> Optional[dict]:
    """Extract and verify the admin session from a request."""
    from theorem_shop.deps import get_settings

    cookie = request.cookies.get(COOKIE_NAME)
    if not cookie:
        return None
    return verify_session_cookie(cookie, get_settings())
