"""Integration tests for admin magic-link login and admin routes."""

import re

from theorem_shop.admin.auth import COOKIE_NAME, create_session_cookie
from theorem_shop.deps import get_magic_link_service, get_settings
from tests.conftest import ADMIN_EMAIL


def link_token(email_sender) -> str:
    match = re.search(r"token=([\w.\-]+)", email_sender.sent[-1]["text"])
    return match.group(1)


class TestLogin:
    async def test_sends_magic_link(self, client, email_sender):
        resp = await client.post("/auth/login", json={"email": ADMIN_EMAIL})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Magic link sent to your email"}
        assert email_sender.sent[0]["to"] == ADMIN_EMAIL
        assert "http://shop.test/auth/verify?token=" in email_sender.sent[0]["text"]

    async def test_unauthorized_email(self, client, email_sender):
        resp = await client.post("/auth/login", json={"email": "intruder@example.com"})
        assert resp.status_code == 403
        assert resp.json()["error"] == "Unauthorized email"
        assert email_sender.sent == []

    async def test_missing_email(self, client):
        resp = await client.post("/auth/login", json={})
        assert resp.status_code == 400

    async def test_malformed_email(self, client, email_sender):
        resp = await client.post("/auth/login", json={"email": "admin@example..com"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid email address", "code": "VALIDATION_ERROR"}
        assert email_sender.sent == []


class TestVerify:
    async def test_valid_link_sets_session(self, client, email_sender):
        await client.post("/auth/login", json={"email": ADMIN_EMAIL})
        resp = await client.get("/auth/verify", params={"token": link_token(email_sender)})
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://shop.test/admin"
        cookie_header = resp.headers["set-cookie"]
        assert cookie_header.startswith(f"{COOKIE_NAME}=")
        assert "HttpOnly" in cookie_header
        assert "Max-Age=86400" in cookie_header

    async def test_link_is_single_use(self, client, email_sender):
        await client.post("/auth/login", json={"email": ADMIN_EMAIL})
        token = link_token(email_sender)
        await client.get("/auth/verify", params={"token": token})
        resp = await client.get("/auth/verify", params={"token": token})
        assert resp.status_code == 302
        assert resp.headers["location"] == "http://shop.test/admin/login?error=token_already_used"

    async def test_missing_token(self, client):
        resp = await client.get("/auth/verify")
        assert resp.headers["location"] == "http://shop.test/admin/login?error=missing_token"

    async def test_invalid_token(self, client):
        resp = await client.get("/auth/verify", params={"token": "forged.token.value"})
        assert resp.headers["location"] == "http://shop.test/admin/login?error=invalid_token"


class TestSession:
    async def test_check_without_session(self, client):
        resp = await client.get("/auth/check")
        assert resp.json() == {"authenticated": False}

    async def test_check_with_session(self, client):
        cookie = create_session_cookie(ADMIN_EMAIL, get_settings())
        client.cookies.set(COOKIE_NAME, cookie)
        resp = await client.get("/auth/check")
        assert resp.json() == {"authenticated": True, "email": ADMIN_EMAIL}

    async def test_logout_clears_cookie(self, client):
        resp = await client.post("/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert f'{COOKIE_NAME}=""' in resp.headers["set-cookie"]

    async def test_status_requires_admin(self, client):
        resp = await client.get("/admin/status")
        assert resp.status_code == 401

    async def test_status(self, client):
        get_magic_link_service().redeem(get_magic_link_service().create_token(ADMIN_EMAIL))
        cookie = create_session_cookie(ADMIN_EMAIL, get_settings())
        client.cookies.set(COOKIE_NAME, cookie)
        resp = await client.get("/admin/status")
        assert resp.status_code == 200
        assert resp.json() == {"pendingCodes": 0, "rateLimitWindows": 0, "usedNonces": 1}
