"""Catalog API router."""

from fastapi import APIRouter

from theorem_shop.catalog.schemas import CatalogEntry

router = APIRouter()


def _get_storage():
    from theorem_shop.deps import get_storage
    return get_storage()


@router.get("/catalog", response_model=list[CatalogEntry])
async def list_catalog():
    """Every purchasable document with its uploaded metadata. Never returns URLs."""
    entries = await _get_storage().list_catalog()
    return sorted(entries, key=lambda e: (e.title or e.name).lower())
