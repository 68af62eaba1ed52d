"""FulfillmentService — mints download links and emails them to the buyer."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Optional, Protocol

from theorem_shop.catalog.schemas import CartItem, CatalogEntry
from theorem_shop.common.config import ShopSettings
from theorem_shop.common.exceptions import (
    FulfillmentError,
    PaymentIncompleteError,
    ShopError,
    StorageError,
)
from theorem_shop.notifications.templates import purchase_email
from theorem_shop.payments.metadata import is_email_sent, parse_intent_metadata

logger = logging.getLogger(__name__)


class DownloadLinkSource(Protocol):
    async def list_catalog(self) -> list[CatalogEntry]: ...

    async def presigned_download_url(self, key: str, expires_in: int) -> str: ...


@dataclass
class DeliveredItem:
    key: str
    title: str
    price: float
    download_url: str


@dataclass
class FulfillmentReceipt:
    email: str
    items: list[DeliveredItem]
    links_expire_at: datetime
    is_free: bool
    reference: Optional[str] = None
    total: Optional[Decimal] = None
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FulfillmentService:
    """Delivers purchased notes.

    ``fulfill`` sends exactly one email per call. ``fulfill_payment_intent``
    wraps it with the "email already sent" flag kept on the payment intent,
    so redelivered webhooks (or a webhook racing the direct trigger) do not
    send twice.
    """

    def __init__(
        self,
        settings: ShopSettings,
        storage: DownloadLinkSource,
        email_sender: Any,
        gateway: Optional[Any] = None,
    ):
        self.settings = settings
        self.storage = storage
        self.email_sender = email_sender
        self.gateway = gateway
        self._intent_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    async def fulfill(
        self,
        email: str,
        items: list[CartItem],
        is_free: bool,
        total: Optional[Decimal] = None,
        reference: Optional[str] = None,
    ) -> FulfillmentReceipt:
        """Email one download link per item. Raises FulfillmentError on any failure."""
        ttl = self.settings.download_link_ttl_seconds
        links_expire_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)

        delivered = []
        for item in items:
            try:
                url = await self.storage.presigned_download_url(item.key, ttl)
            except StorageError as e:
                raise FulfillmentError(
                    f"Could not create download link for {item.title}"
                ) from e
            delivered.append(
                DeliveredItem(key=item.key, title=item.title, price=item.price, download_url=url)
            )

        subject, html = purchase_email(
            self.settings.shop_name,
            items=[vars(d) for d in delivered],
            link_ttl_days=max(1, ttl // 86400),
            total=total,
            reference=reference,
            is_free=is_free,
            support_email=self.settings.email_from,
        )
        if not await self.email_sender.send(email, subject, html):
            raise FulfillmentError("Purchase email was not accepted by the provider")

        logger.info(
            "Purchase email sent",
            extra={"email": email, "items": len(delivered), "reference": reference, "free": is_free},
        )
        return FulfillmentReceipt(
            email=email,
            items=delivered,
            links_expire_at=links_expire_at,
            is_free=is_free,
            reference=reference,
            total=total,
        )

    async def _with_catalog_titles(self, items: list[CartItem]) -> list[CartItem]:
        """Swap the truncated metadata titles for the full catalog ones."""
        try:
            entries = await self.storage.list_catalog()
        except StorageError:
            logger.warning("Catalog unavailable; emailing metadata titles", exc_info=True)
            return items
        titles = {e.key: e.title for e in entries if e.title}
        return [item.model_copy(update={"title": titles.get(item.key, item.title)}) for item in items]

    @asynccontextmanager
    async def _intent_lock(self, intent_id: str) -> AsyncIterator[None]:
        """Serialize fulfillment per intent within this process."""
        lock, users = self._intent_locks.get(intent_id, (asyncio.Lock(), 0))
        self._intent_locks[intent_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._intent_locks[intent_id]
            if users <= 1:
                del self._intent_locks[intent_id]
            else:
                self._intent_locks[intent_id] = (lock, users - 1)

    async def fulfill_payment_intent(self, intent_id: str) -> Optional[FulfillmentReceipt]:
        """Fulfill a paid intent at most once.

        Returns None when the intent was already fulfilled. The intent is
        re-read right before sending; separate processes handling the same
        event concurrently can still both send, which is tolerated.
        """
        if self.gateway is None:
            raise FulfillmentError("No payment gateway configured")

        async with self._intent_lock(intent_id):
            intent = await self.gateway.retrieve_payment_intent(intent_id)
            if is_email_sent(intent.metadata):
                logger.info("Payment %s already fulfilled; skipping", intent_id)
                return None
            if intent.status != "succeeded":
                raise PaymentIncompleteError(
                    f"Payment {intent_id} has not succeeded (status: {intent.status})"
                )

            purchase = parse_intent_metadata(intent.metadata)
            receipt = await self.fulfill(
                purchase.email,
                await self._with_catalog_titles(purchase.items),
                is_free=False,
                total=Decimal(intent.amount) / 100,
                reference=intent.id,
            )

            try:
                await self.gateway.mark_email_sent(intent_id)
            except ShopError:
                # Email already sent; propagating would trigger a redelivery.
                logger.exception("Could not flag payment %s as fulfilled", intent_id)
            return receipt
