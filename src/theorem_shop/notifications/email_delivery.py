"""Transactional email delivery — SendGrid / Resend integration."""

import logging

import httpx

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
RESEND_URL = "https://api.resend.com/emails"


class EmailSender:
    """Sends HTML emails through the configured provider.

    Supports SendGrid and Resend. With no provider configured nothing is
    sent and ``send`` reports failure.
    """

    def __init__(
        self,
        provider: str = "",
        api_key: str = "",
        from_email: str = "notes@example.com",
        from_name: str = "Zeeshan Maths",
        timeout: float = 30,
    ):
        self.provider = provider.lower()  # "sendgrid" or "resend"
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self.provider in ("sendgrid", "resend") and bool(self.api_key)

    async def send(self, to: str, subject: str, html: str, text: str = "") -> bool:
        """Send one email. Returns True once the provider has accepted it."""
        if not self.is_configured:
            logger.warning("No email provider configured; dropping %r to %s", subject, to)
            return False
        if self.provider == "sendgrid":
            return await self._send_sendgrid(to, subject, html, text)
        return await self._send_resend(to, subject, html, text)

    async def _send_sendgrid(self, to: str, subject: str, html: str, text: str) -> bool:
        """Send via SendGrid v3 API."""
        content = []
        if text:
            content.append({"type": "text/plain", "value": text})
        content.append({"type": "text/html", "value": html})
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    SENDGRID_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "personalizations": [{"to": [{"email": to}]}],
                        "from": {"email": self.from_email, "name": self.from_name},
                        "subject": subject,
                        "content": content,
                    },
                )
        except httpx.HTTPError:
            logger.exception("SendGrid send failed")
            return False
        if resp.status_code in (200, 202):
            logger.info("SendGrid email sent to %s", to)
            return True
        logger.warning("SendGrid error: %s %s", resp.status_code, resp.text)
        return False

    async def _send_resend(self, to: str, subject: str, html: str, text: str) -> bool:
        """Send via Resend API."""
        payload = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    RESEND_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError:
            logger.exception("Resend send failed")
            return False
        if resp.status_code in (200, 201):
            logger.info("Resend email sent to %s", to)
            return True
        logger.warning("Resend error: %s %s", resp.status_code, resp.text)
        return False
