"""Tests for admin.auth — magic links and signed admin sessions."""

from unittest.mock import patch

import pytest
from itsdangerous import URLSafeTimedSerializer

from theorem_shop.admin.auth import (
    MagicLinkService,
    create_session_cookie,
    verify_session_cookie,
)
from theorem_shop.common.exceptions import (
    EmailDeliveryError,
    InvalidTokenError,
    TokenAlreadyUsedError,
    UnauthorizedEmailError,
)
from theorem_shop.verification.nonce_store import NonceStore
from tests.conftest import ADMIN_EMAIL, SECRET_KEY, make_settings


@pytest.fixture
def service(settings, email_sender):
    return MagicLinkService(settings, NonceStore(), email_sender)


class TestSendMagicLink:
    async def test_sends_link_to_admin(self, service, email_sender):
        link = await service.send_magic_link("  Admin@Example.com ")
        assert link.startswith("http://shop.test/auth/verify?token=")
        assert email_sender.sent[0]["to"] == ADMIN_EMAIL
        assert email_sender.sent[0]["subject"] == "Admin Login - Magic Link"
        assert link in email_sender.sent[0]["html"]
        assert "15 minutes" in email_sender.sent[0]["text"]

    async def test_rejects_unlisted_email(self, service, email_sender):
        with pytest.raises(UnauthorizedEmailError):
            await service.send_magic_link("intruder@example.com")
        assert email_sender.sent == []

    async def test_email_failure(self, service, email_sender):
        email_sender.accept = False
        with pytest.raises(EmailDeliveryError):
            await service.send_magic_link(ADMIN_EMAIL)


class TestRedeem:
    def test_redeem_once(self, service):
        token = service.create_token(ADMIN_EMAIL)
        assert service.redeem(token) == ADMIN_EMAIL
        with pytest.raises(TokenAlreadyUsedError):
            service.redeem(token)

    def test_tampered_token(self, service):
        token = service.create_token(ADMIN_EMAIL)
        with pytest.raises(InvalidTokenError):
            service.redeem(token[:-2] + "xx")

    def test_wrong_secret(self, service, email_sender):
        other = MagicLinkService(make_settings(secret_key="another-secret"), NonceStore(), email_sender)
        with pytest.raises(InvalidTokenError):
            service.redeem(other.create_token(ADMIN_EMAIL))

    def test_expired_token(self, service):
        token = service.create_token(ADMIN_EMAIL)
        with patch("time.time", return_value=10**10):
            with pytest.raises(InvalidTokenError) as exc_info:
                service.redeem(token)
        assert exc_info.value.message == "Token expired"

    def test_session_cookie_is_not_a_magic_link(self, service, settings):
        cookie = create_session_cookie(ADMIN_EMAIL, settings)
        with pytest.raises(InvalidTokenError):
            service.redeem(cookie)

    def test_wrong_type_rejected(self, service):
        s = URLSafeTimedSerializer(SECRET_KEY, salt="magic-link")
        token = s.dumps({"email": ADMIN_EMAIL, "nonce": "n1", "type": "session"})
        with pytest.raises(InvalidTokenError):
            service.redeem(token)


class TestSessionCookie:
    def test_round_trip(self, settings):
        cookie = create_session_cookie(ADMIN_EMAIL, settings)
        assert verify_session_cookie(cookie, settings)["email"] == ADMIN_EMAIL

    def test_garbage(self, settings):
        assert verify_session_cookie("not-a-cookie", settings) is None

    def test_magic_link_is_not_a_session(self, service, settings):
        assert verify_session_cookie(service.create_token(ADMIN_EMAIL), settings) is None

    def test_expired(self, settings):
        cookie = create_session_cookie(ADMIN_EMAIL, settings)
        with patch("time.time", return_value=10**10):
            assert verify_session_cookie(cookie, settings) is None
