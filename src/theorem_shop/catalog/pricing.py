"""Server-side price authority.

The cart and its displayed total live in the browser, so the only total
ever charged is the one recomputed here from the storage catalog.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from theorem_shop.catalog.schemas import CartItem, CatalogEntry
from theorem_shop.common.exceptions import PriceMismatchError, UnknownItemError

logger = logging.getLogger(__name__)

PRICE_TOLERANCE = Decimal("0.01")
CENTS = Decimal("0.01")


class CatalogSource(Protocol):
    async def list_catalog(self) -> list[CatalogEntry]: ...


@dataclass
class PriceQuote:
    """Authoritative total plus each line at its catalog price."""

    total: Decimal
    lines: list[CartItem]

    @property
    def is_free(self) -> bool:
        return self.total == 0


def to_minor_units(amount: Decimal) -> int:
    """Convert an amount to cents, rounding half-up.

    Settings only admit two-decimal currencies, so the minor unit is always 1/100.
    """
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def check_declared_total(quote: PriceQuote, declared: float) -> None:
    """Raise PriceMismatchError unless ``declared`` is within 0.01 of the quote."""
    declared_amount = Decimal(str(declared))
    if abs(quote.total - declared_amount) > PRICE_TOLERANCE:
        logger.warning(
            "Declared total disagrees with catalog",
            extra={"declared": str(declared_amount), "authoritative": str(quote.total)},
        )
        raise PriceMismatchError()


class PriceAuthority:
    """Recomputes cart totals from the catalog of record."""

    def __init__(self, catalog_source: CatalogSource):
        self.catalog_source = catalog_source

    async def load_prices(self) -> dict[str, tuple[CatalogEntry, Decimal]]:
        """Map of key → (entry, price) for every entry with a usable price."""
        prices = {}
        for entry in await self.catalog_source.list_catalog():
            price = entry.unit_price
            if price is not None:
                prices[entry.key] = (entry, price)
        return prices

    async def quote(self, items: list[CartItem]) -> PriceQuote:
        prices = await self.load_prices()
        total = Decimal("0")
        lines = []
        for item in items:
            found = prices.get(item.key)
            if found is None:
                raise UnknownItemError(item.title)
            entry, price = found
            total += price
            lines.append(
                CartItem(key=item.key, title=entry.title or item.title, price=float(price))
            )
        return PriceQuote(total=total.quantize(CENTS, rounding=ROUND_HALF_UP), lines=lines)

    async def authoritative_total(self, items: list[CartItem]) -> Decimal:
        return (await self.quote(items)).total
