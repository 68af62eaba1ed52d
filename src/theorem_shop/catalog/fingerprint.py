"""Deterministic cart fingerprints.

The fingerprint ties a verification code to the cart it was issued for, so
a cart edited between the two checkout round-trips is detected. It is not a
defence against a client that controls both requests; the price authority
covers that.
"""

import hashlib
import json
from typing import Iterable

from theorem_shop.catalog.schemas import CartItem


def canonical_cart(items: Iterable[CartItem]) -> str:
    """Canonical JSON for an ordered item list."""
    payload = [
        {"key": item.key, "title": item.title, "price": item.price}
        for item in items
    ]
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(items: Iterable[CartItem]) -> str:
    """SHA-256 hex digest of the canonical cart."""
    return hashlib.sha256(canonical_cart(items).encode("utf-8")).hexdigest()
