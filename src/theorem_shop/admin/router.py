"""Admin login (magic link) and admin-only API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import EmailStr, field_validator

from theorem_shop.admin.auth import COOKIE_NAME, create_session_cookie, get_admin_session
from theorem_shop.common.exceptions import InvalidTokenError, TokenAlreadyUsedError
from theorem_shop.common.schemas import CamelModel
from theorem_shop.common.security import require_admin

router = APIRouter(prefix="/auth")
admin_router = APIRouter(prefix="/admin")


class LoginRequest(CamelModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginResponse(CamelModel):
    success: bool = True
    message: str = "Magic link sent to your email"


class SessionStatus(CamelModel):
    authenticated: bool
    email: Optional[str] = None


class AdminStatus(CamelModel):
    pending_codes: int
    rate_limit_windows: int
    used_nonces: int


def _get_service():
    from theorem_shop.deps import get_magic_link_service
    return get_magic_link_service()


def _login_redirect(error: str) -> RedirectResponse:
    from theorem_shop.deps import get_settings
    return RedirectResponse(f"{get_settings().base_url}/admin/login?error={error}", status_code=302)


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest):
    await _get_service().send_magic_link(body.email)
    return LoginResponse()


@router.get("/verify")
async def verify(token: Optional[str] = None):
    """Redeem a magic link and start an admin session."""
    from theorem_shop.deps import get_settings

    if not token:
        return _login_redirect("missing_token")
    try:
        email = _get_service().redeem(token)
    except TokenAlreadyUsedError:
        return _login_redirect("token_already_used")
    except InvalidTokenError:
        return _login_redirect("invalid_token")

    settings = get_settings()
    response = RedirectResponse(f"{settings.base_url}/admin", status_code=302)
    response.set_cookie(
        COOKIE_NAME, create_session_cookie(email, settings),
        max_age=settings.admin_session_ttl_seconds,
        httponly=True, samesite="lax", path="/",
        secure=settings.environment == "production",
    )
    return response


@router.get("/check", response_model=SessionStatus, response_model_exclude_none=True)
async def check(request: Request):
    session = get_admin_session(request)
    if session is None:
        return SessionStatus(authenticated=False)
    return SessionStatus(authenticated=True, email=session["email"])


@router.post("/logout")
async def logout():
    response = JSONResponse({"success": True})
    response.delete_cookie(COOKIE_NAME, path="/")
    return response


@admin_router.get("/status", response_model=AdminStatus)
async def status(_=Depends(require_admin)):
    """Sizes of the in-memory verification stores."""
    from theorem_shop.deps import get_code_store, get_nonce_store, get_rate_limiter

    return AdminStatus(
        pending_codes=len(get_code_store()),
        rate_limit_windows=len(get_rate_limiter()),
        used_nonces=len(get_nonce_store()),
    )
