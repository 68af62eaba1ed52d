"""Pydantic schemas for cart items and the storage-backed catalog."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from theorem_shop.common.schemas import CamelModel


class CartItem(BaseModel):
    """Canonical cart line.

    Browsers have sent the storage key as either ``key`` or ``id``; both are
    accepted here and only ``key`` exists past this boundary.
    """

    key: str = Field(..., min_length=1, validation_alias=AliasChoices("key", "id"))
    title: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)


class CatalogEntry(CamelModel):
    """One stored document and the metadata it was uploaded with."""

    key: str
    name: str
    size: int = 0
    uploaded_at: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    pages: Optional[str] = None
    topics: Optional[str] = None
    file_type: Optional[str] = None

    @property
    def unit_price(self) -> Optional[Decimal]:
        """Stored price as a Decimal, or None when missing or unparsable."""
        if self.price is None or not self.price.strip():
            return None
        try:
            value = Decimal(self.price.strip().lstrip("$"))
        except InvalidOperation:
            return None
        if not value.is_finite() or value < 0:
            return None
        return value
