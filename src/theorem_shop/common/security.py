"""Request identity helpers and admin authentication dependencies."""

from fastapi import HTTPException, Request

UNKNOWN_CLIENT = "unknown"


def client_address(request: Request) -> str:
    """Best-effort client address, honouring reverse-proxy headers.

    Order: first ``X-Forwarded-For`` hop, ``X-Real-IP``, the socket peer,
    then a sentinel.
    """
    forwarded_for = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


async def require_admin(request: Request) -> str:
    """FastAPI dependency that requires a valid admin session cookie.

    Returns the admin's email address.
    """
    from theorem_shop.admin.auth import get_admin_session

    session = get_admin_session(request)
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session["email"]
