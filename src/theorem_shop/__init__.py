"""theorem-shop: email-verified checkout and download delivery for maths notes."""

from theorem_shop.catalog.fingerprint import canonical_cart, fingerprint
from theorem_shop.catalog.pricing import PriceAuthority, PriceQuote
from theorem_shop.verification.code_store import InMemoryCodeStore
from theorem_shop.verification.rate_limiter import RateLimiter

__all__ = [
    "canonical_cart",
    "fingerprint",
    "PriceAuthority",
    "PriceQuote",
    "InMemoryCodeStore",
    "RateLimiter",
]
__version__ = "0.1.0"
