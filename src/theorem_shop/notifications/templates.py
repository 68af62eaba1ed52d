"""Jinja2 rendering for transactional emails."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

_env = Environment(
    loader=PackageLoader("theorem_shop", "notifications/templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def _money(value: Any) -> str:
    return f"{Decimal(str(value)):.2f}"


_env.filters["money"] = _money


def render(template_name: str, **context: Any) -> str:
    context.setdefault("year", datetime.now(timezone.utc).year)
    return _env.get_template(template_name).render(**context)


def verification_code_email(
    shop_name: str, code: str, item_count: int, total: float, ttl_minutes: int,
) -> tuple[str, str]:
    """Subject and HTML body for the checkout verification code."""
    subject = f"Your Verification Code - {shop_name} Purchase"
    html = render(
        "verification_code.html",
        shop_name=shop_name,
        code=code,
        item_count=item_count,
        total=total,
        ttl_minutes=ttl_minutes,
    )
    return subject, html


def purchase_email(
    shop_name: str,
    items: list[dict[str, Any]],
    link_ttl_days: int,
    total: Optional[Decimal] = None,
    reference: Optional[str] = None,
    is_free: bool = False,
    support_email: str = "",
) -> tuple[str, str]:
    """Subject and HTML body for the download-links email.

    ``items`` are dicts with ``title``, ``price`` and ``download_url``.
    """
    subject = f"Your {shop_name} Notes - Download Links"
    html = render(
        "purchase.html",
        shop_name=shop_name,
        items=items,
        link_ttl_days=link_ttl_days,
        total=total,
        reference=reference,
        is_free=is_free,
        support_email=support_email,
    )
    return subject, html


def magic_link_email(shop_name: str, link: str, ttl_minutes: int) -> tuple[str, str, str]:
    """Subject, HTML and plain-text bodies for the admin login link."""
    subject = "Admin Login - Magic Link"
    html = render("magic_link.html", shop_name=shop_name, link=link, ttl_minutes=ttl_minutes)
    text = (
        f"Click this link to login to your admin panel: {link}\n\n"
        f"This link will expire in {ttl_minutes} minutes."
    )
    return subject, html, text
