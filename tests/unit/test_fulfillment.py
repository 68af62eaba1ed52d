"""Tests for fulfillment.service — download links and the idempotent paid path."""

import asyncio
from decimal import Decimal

import pytest

from theorem_shop.catalog.schemas import CartItem, CatalogEntry
from theorem_shop.common.exceptions import (
    FulfillmentError,
    MetadataError,
    PaymentIncompleteError,
)
from theorem_shop.fulfillment.service import FulfillmentService
from theorem_shop.payments.metadata import build_intent_metadata
from tests.conftest import BUYER_EMAIL

ITEMS = [
    CartItem(key="notes/algebra.pdf", title="Algebra Basics", price=5.0),
    CartItem(key="notes/calculus.pdf", title="Calculus I", price=7.5),
]

LONG_TITLE = "Edexcel A-Level Pure Mathematics Year 2 Complete Notes"
LONG_ITEM = CartItem(key="notes/pure2.pdf", title=LONG_TITLE, price=9.0)


@pytest.fixture
def service(settings, storage, email_sender, gateway):
    return FulfillmentService(settings, storage, email_sender, gateway=gateway)


async def paid_intent(gateway, items=ITEMS, succeeded=True):
    intent = await gateway.create_payment_intent(
        amount=1250, currency="usd", email=BUYER_EMAIL,
        metadata=build_intent_metadata(BUYER_EMAIL, "hash", items),
    )
    if succeeded:
        gateway.succeed(intent.id)
    return intent.id


class TestFulfill:
    async def test_one_email_with_every_link(self, service, storage, email_sender):
        receipt = await service.fulfill(BUYER_EMAIL, ITEMS, is_free=False, total=Decimal("12.50"), reference="pi_1")
        assert len(email_sender.sent) == 1
        message = email_sender.sent[0]
        assert message["to"] == BUYER_EMAIL
        assert message["subject"] == "Your Zeeshan Maths Notes - Download Links"
        for item in ITEMS:
            assert item.title in message["html"]
            assert f"https://files.test/{item.key}?expires=604800" in message["html"]
        assert "7 days" in message["html"]
        assert "pi_1" in message["html"]
        assert [d.key for d in receipt.items] == [i.key for i in ITEMS]
        assert storage.presigned == [(i.key, 604800) for i in ITEMS]

    async def test_links_expire_in_seven_days(self, service):
        receipt = await service.fulfill(BUYER_EMAIL, ITEMS[:1], is_free=True)
        remaining = receipt.links_expire_at - receipt.sent_at
        assert abs(remaining.total_seconds() - 7 * 24 * 3600) < 5

    async def test_free_email_has_no_total(self, service, email_sender):
        free = [CartItem(key="notes/formulas.pdf", title="Formula Sheet", price=0.0)]
        receipt = await service.fulfill(BUYER_EMAIL, free, is_free=True)
        assert receipt.is_free
        assert "Total Paid" not in email_sender.sent[0]["html"]

    async def test_storage_failure(self, service, storage, email_sender):
        storage.fail_presign = True
        with pytest.raises(FulfillmentError):
            await service.fulfill(BUYER_EMAIL, ITEMS, is_free=False)
        assert email_sender.sent == []

    async def test_email_rejected(self, service, email_sender):
        email_sender.accept = False
        with pytest.raises(FulfillmentError):
            await service.fulfill(BUYER_EMAIL, ITEMS, is_free=False)


class TestFulfillPaymentIntent:
    async def test_fulfills_and_flags_intent(self, service, gateway, email_sender):
        intent_id = await paid_intent(gateway)
        receipt = await service.fulfill_payment_intent(intent_id)
        assert receipt.email == BUYER_EMAIL
        assert receipt.total == Decimal("12.5")
        assert receipt.reference == intent_id
        assert len(email_sender.sent) == 1
        assert gateway.intents[intent_id].metadata["email_sent"] == "true"

    async def test_second_call_is_noop(self, service, gateway, email_sender):
        intent_id = await paid_intent(gateway)
        await service.fulfill_payment_intent(intent_id)
        assert await service.fulfill_payment_intent(intent_id) is None
        assert len(email_sender.sent) == 1

    async def test_concurrent_calls_send_once(self, service, gateway, email_sender):
        intent_id = await paid_intent(gateway)
        results = await asyncio.gather(
            *(service.fulfill_payment_intent(intent_id) for _ in range(5))
        )
        assert sum(r is not None for r in results) == 1
        assert len(email_sender.sent) == 1
        assert service._intent_locks == {}

    async def test_requires_succeeded_status(self, service, gateway, email_sender):
        intent_id = await paid_intent(gateway, succeeded=False)
        with pytest.raises(PaymentIncompleteError):
            await service.fulfill_payment_intent(intent_id)
        assert email_sender.sent == []

    async def test_flag_failure_is_not_raised(self, service, gateway, email_sender):
        intent_id = await paid_intent(gateway)
        gateway.fail_mark = True
        receipt = await service.fulfill_payment_intent(intent_id)
        assert receipt is not None
        assert len(email_sender.sent) == 1

    async def test_email_failure_leaves_intent_unflagged(self, service, gateway, email_sender):
        intent_id = await paid_intent(gateway)
        email_sender.accept = False
        with pytest.raises(FulfillmentError):
            await service.fulfill_payment_intent(intent_id)
        assert gateway.intents[intent_id].metadata["email_sent"] == "false"

    async def test_email_uses_full_catalog_titles(self, service, gateway, storage, email_sender):
        storage.entries.append(
            CatalogEntry(key="notes/pure2.pdf", name="pure2.pdf", title=LONG_TITLE, price="9.00")
        )
        intent_id = await paid_intent(gateway, items=[LONG_ITEM])
        await service.fulfill_payment_intent(intent_id)
        assert LONG_TITLE in email_sender.sent[0]["html"]

    async def test_catalog_outage_falls_back_to_metadata_titles(self, service, gateway, storage, email_sender):
        intent_id = await paid_intent(gateway, items=[LONG_ITEM])
        storage.fail_listing = True
        await service.fulfill_payment_intent(intent_id)
        html = email_sender.sent[0]["html"]
        assert LONG_TITLE[:39] in html
        assert LONG_TITLE not in html

    async def test_corrupt_metadata(self, service, gateway):
        intent_id = await paid_intent(gateway)
        del gateway.intents[intent_id].metadata["items_0"]
        with pytest.raises(MetadataError):
            await service.fulfill_payment_intent(intent_id)

    async def test_requires_gateway(self, settings, storage, email_sender):
        service = FulfillmentService(settings, storage, email_sender)
        with pytest.raises(FulfillmentError):
            await service.fulfill_payment_intent("pi_1")
