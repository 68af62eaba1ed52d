"""Purchase metadata carried on a payment intent.

Stripe limits metadata to 50 keys with values of at most 500 characters,
while the item list of a cart can be longer than that. Items are encoded
compactly and the encoding is split across ``items_0``, ``items_1``, …;
reassembly concatenates the chunks in index order and re-parses.

The chunk codec (``split_chunks`` / ``chunk_fields`` / ``join_chunks``) is
independent of what is being carried.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from theorem_shop.catalog.schemas import CartItem
from theorem_shop.common.exceptions import MetadataError

EMAIL_KEY = "email"
CART_HASH_KEY = "cart_hash"
EMAIL_SENT_KEY = "email_sent"
CHUNK_COUNT_KEY = "item_chunks"
ITEMS_PREFIX = "items_"
# Single-field encoding written by earlier checkouts.
LEGACY_ITEMS_KEY = "items"

MAX_METADATA_KEYS = 50
DEFAULT_CHUNK_SIZE = 500
DEFAULT_TITLE_MAX = 40


# ── Chunk codec ──


def split_chunks(payload: str, chunk_size: int) -> list[str]:
    """Split ``payload`` into consecutive pieces of at most ``chunk_size`` chars."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    if not payload:
        return [""]
    return [payload[i:i + chunk_size] for i in range(0, len(payload), chunk_size)]


def chunk_fields(payload: str, prefix: str, chunk_size: int) -> dict[str, str]:
    """``{prefix0: chunk0, prefix1: chunk1, …}`` for ``payload``."""
    return {
        f"{prefix}{index}": chunk
        for index, chunk in enumerate(split_chunks(payload, chunk_size))
    }


def join_chunks(fields: Mapping[str, str], prefix: str) -> str:
    """Reassemble chunks written by ``chunk_fields``.

    Ordering is by numeric index, not key order, so ``items_10`` follows
    ``items_9``. A gap in the indices means metadata was lost.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    indexed = {}
    for key, value in fields.items():
        match = pattern.match(key)
        if match:
            indexed[int(match.group(1))] = value
    if not indexed:
        raise MetadataError(f"No '{prefix}*' chunks found")
    if sorted(indexed) != list(range(len(indexed))):
        raise MetadataError(f"Non-contiguous '{prefix}*' chunks: {sorted(indexed)}")
    return "".join(indexed[i] for i in range(len(indexed)))


# ── Item encoding ──


def encode_items(items: list[CartItem], title_max: int = DEFAULT_TITLE_MAX) -> str:
    """Compact JSON: short field names and truncated titles."""
    compact = [
        {"k": item.key, "t": item.title[:title_max], "p": item.price}
        for item in items
    ]
    return json.dumps(compact, separators=(",", ":"), ensure_ascii=False)


def _expand(raw: dict[str, Any]) -> CartItem:
    if "k" in raw:
        return CartItem(key=raw["k"], title=raw.get("t") or raw["k"], price=raw.get("p", 0))
    # Long-form records from the single-field encoding
    return CartItem(
        key=raw.get("key") or raw.get("id"),
        title=raw.get("title") or raw.get("key") or raw.get("id"),
        price=raw.get("price", 0),
    )


def decode_items(encoded: str) -> list[CartItem]:
    try:
        raw_items = json.loads(encoded)
    except ValueError as e:
        raise MetadataError(f"Unreadable item metadata: {e}") from e
    if not isinstance(raw_items, list):
        raise MetadataError("Item metadata is not a list")
    try:
        return [_expand(raw) for raw in raw_items]
    except (TypeError, AttributeError, PydanticValidationError) as e:
        raise MetadataError(f"Malformed item in metadata: {e}") from e


# ── Intent metadata ──


@dataclass
class PurchaseMetadata:
    email: str
    cart_hash: str
    items: list[CartItem]
    email_sent: bool = False


def is_email_sent(metadata: Mapping[str, Any]) -> bool:
    return str(metadata.get(EMAIL_SENT_KEY, "")).lower() == "true"


def build_intent_metadata(
    email: str,
    cart_hash: str,
    items: list[CartItem],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    title_max: int = DEFAULT_TITLE_MAX,
) -> dict[str, str]:
    chunks = chunk_fields(encode_items(items, title_max), ITEMS_PREFIX, chunk_size)
    metadata = {
        EMAIL_KEY: email,
        CART_HASH_KEY: cart_hash,
        EMAIL_SENT_KEY: "false",
        CHUNK_COUNT_KEY: str(len(chunks)),
        **chunks,
    }
    if len(metadata) > MAX_METADATA_KEYS:
        raise MetadataError(
            f"Cart too large for payment metadata ({len(chunks)} chunks)"
        )
    return metadata


def parse_intent_metadata(metadata: Mapping[str, Any]) -> PurchaseMetadata:
    fields = {k: str(v) for k, v in metadata.items() if v is not None}
    if f"{ITEMS_PREFIX}0" in fields:
        encoded = join_chunks(fields, ITEMS_PREFIX)
        expected = fields.get(CHUNK_COUNT_KEY)
        found = sum(1 for k in fields if re.match(rf"^{ITEMS_PREFIX}\d+$", k))
        if expected is not None and expected.isdigit() and int(expected) != found:
            raise MetadataError(f"Expected {expected} item chunks, found {found}")
    elif LEGACY_ITEMS_KEY in fields:
        encoded = fields[LEGACY_ITEMS_KEY]
    else:
        raise MetadataError("Payment metadata carries no items")

    email = fields.get(EMAIL_KEY, "")
    if not email:
        raise MetadataError("Payment metadata carries no email")

    return PurchaseMetadata(
        email=email,
        cart_hash=fields.get(CART_HASH_KEY, ""),
        items=decode_items(encoded),
        email_sent=is_email_sent(fields),
    )
