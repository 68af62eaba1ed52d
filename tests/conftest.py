"""Shared test fixtures for theorem-shop."""

import dataclasses
import hashlib
import hmac
import json
import time

import pytest
from httpx import ASGITransport, AsyncClient

from theorem_shop.catalog.schemas import CatalogEntry
from theorem_shop.common.config import ShopSettings
from theorem_shop.common.exceptions import PaymentProcessorError, StorageError
from theorem_shop.payments.gateway import IntentRecord, StripeGateway

SECRET_KEY = "test-secret-key-for-unit-tests"
WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_EMAIL = "admin@example.com"
BUYER_EMAIL = "buyer@example.com"


def make_settings(**overrides) -> ShopSettings:
    defaults = {
        "secret_key": SECRET_KEY,
        "stripe_secret_key": "sk_test_fake",
        "stripe_webhook_secret": WEBHOOK_SECRET,
        "admin_emails": ADMIN_EMAIL,
        "base_url": "http://shop.test",
    }
    defaults.update(overrides)
    return ShopSettings(**defaults)


def sign_stripe_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs webhooks."""
    ts = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={signature}"


def intent_event(event_type: str, intent: IntentRecord, event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "data": {"object": {
            "id": intent.id,
            "object": "payment_intent",
            "status": intent.status,
            "amount": intent.amount,
            "currency": intent.currency,
            "metadata": dict(intent.metadata),
        }},
    })


CATALOG = [
    CatalogEntry(key="notes/algebra.pdf", name="algebra.pdf", title="Algebra Basics", price="5.00"),
    CatalogEntry(key="notes/calculus.pdf", name="calculus.pdf", title="Calculus I", price="7.50"),
    CatalogEntry(key="notes/formulas.pdf", name="formulas.pdf", title="Formula Sheet", price="0"),
    CatalogEntry(key="notes/draft.pdf", name="draft.pdf", title="Unpriced Draft"),
]

ALGEBRA = {"key": "notes/algebra.pdf", "title": "Algebra Basics", "price": 5.0}
CALCULUS = {"key": "notes/calculus.pdf", "title": "Calculus I", "price": 7.5}
FORMULAS = {"key": "notes/formulas.pdf", "title": "Formula Sheet", "price": 0.0}


# ── Collaborator fakes ──


class FakeStorage:
    """In-memory catalog and predictable download URLs."""

    def __init__(self, entries=None):
        self.entries = list(CATALOG if entries is None else entries)
        self.fail_listing = False
        self.fail_presign = False
        self.presigned = []

    async def list_catalog(self):
        if self.fail_listing:
            raise StorageError("Failed to list catalog")
        return list(self.entries)

    async def presigned_download_url(self, key, expires_in):
        if self.fail_presign:
            raise StorageError(f"Failed to create download link for {key}")
        self.presigned.append((key, expires_in))
        return f"https://files.test/{key}?expires={expires_in}"


class FakeEmailSender:
    """Records every message instead of sending it."""

    def __init__(self):
        self.sent = []
        self.accept = True

    async def send(self, to, subject, html, text=""):
        if not self.accept:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return True


class FakeGateway(StripeGateway):
    """Stripe stand-in with real webhook signature checks."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET):
        super().__init__("sk_test_fake", webhook_secret)
        self.intents: dict[str, IntentRecord] = {}
        self.fail_create = False
        self.fail_mark = False
        self.marked = []

    async def create_payment_intent(self, amount, currency, email, metadata, description=""):
        if self.fail_create:
            raise PaymentProcessorError("Failed to create payment")
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents[intent_id] = IntentRecord(
            id=intent_id,
            status="requires_payment_method",
            amount=amount,
            currency=currency,
            metadata=dict(metadata),
            client_secret=f"{intent_id}_secret_abc",
            receipt_email=email,
        )
        return dataclasses.replace(self.intents[intent_id])

    async def retrieve_payment_intent(self, intent_id):
        if intent_id not in self.intents:
            raise PaymentProcessorError("Failed to load payment")
        record = self.intents[intent_id]
        return dataclasses.replace(record, metadata=dict(record.metadata))

    async def mark_email_sent(self, intent_id):
        if self.fail_mark:
            raise PaymentProcessorError("Failed to update payment")
        self.marked.append(intent_id)
        self.intents[intent_id].metadata["email_sent"] = "true"

    def succeed(self, intent_id: str) -> IntentRecord:
        self.intents[intent_id].status = "succeeded"
        return self.intents[intent_id]


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(monkeypatch, storage, email_sender, gateway):
    """Create a test app with fake storage, email and payment collaborators."""
    monkeypatch.setenv("THEOREM_SECRET_KEY", SECRET_KEY)
    monkeypatch.setenv("THEOREM_STRIPE_SECRET_KEY", "sk_test_fake")
    monkeypatch.setenv("THEOREM_STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("THEOREM_ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setenv("THEOREM_BASE_URL", "http://shop.test")

    # Clear caches and singletons so new env vars take effect
    from theorem_shop.common.config import get_settings
    get_settings.cache_clear()

    from theorem_shop import deps
    deps.reset_singletons()
    deps._storage = storage
    deps._email_sender = email_sender
    deps._gateway = gateway

    from theorem_shop.app import create_app
    yield create_app()

    deps.reset_singletons()
    get_settings.cache_clear()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
