"""Cloudflare R2 object storage (S3-compatible) for the notes catalog."""

import asyncio
import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from theorem_shop.catalog.schemas import CatalogEntry
from theorem_shop.common.config import ShopSettings
from theorem_shop.common.exceptions import StorageError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".ppt", ".pptx", ".doc", ".docx", ".xls", ".xlsx")


def is_supported_key(key: str) -> bool:
    return key.lower().endswith(SUPPORTED_EXTENSIONS)


class R2Storage:
    """Lists catalog entries and mints presigned download URLs.

    boto3 is blocking; every call runs in a worker thread.
    """

    def __init__(self, settings: ShopSettings, client: Optional[Any] = None):
        self.bucket = settings.r2_bucket_name
        self._settings = settings
        self._client = client

    @property
    def client(self):
        """Lazy-init the boto3 S3 client."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self._settings.r2_endpoint,
                aws_access_key_id=self._settings.r2_access_key_id,
                aws_secret_access_key=self._settings.r2_secret_access_key,
                region_name="auto",
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def is_configured(self) -> bool:
        s = self._settings
        return bool(s.r2_account_id or s.r2_endpoint_url) and bool(
            s.r2_access_key_id and s.r2_secret_access_key and s.r2_bucket_name
        )

    async def list_catalog(self) -> list[CatalogEntry]:
        """All supported documents with their upload metadata (no URLs)."""
        if not self.is_configured():
            raise StorageError("Server configuration error: missing storage credentials")
        try:
            return await asyncio.to_thread(self._list_catalog)
        except (BotoCoreError, ClientError) as e:
            logger.error("Catalog listing failed: %s", e)
            raise StorageError("Failed to list catalog") from e

    def _list_catalog(self) -> list[CatalogEntry]:
        entries = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket):
            for obj in page.get("Contents", []):
                key = obj.get("Key", "")
                if is_supported_key(key):
                    entries.append(self._describe(obj))
        return entries

    def _describe(self, obj: dict[str, Any]) -> CatalogEntry:
        key = obj["Key"]
        entry = {
            "key": key,
            "name": key.rsplit("/", 1)[-1],
            "size": obj.get("Size", 0),
            "uploaded_at": obj.get("LastModified"),
        }
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError:
            # Basic info only; without a price the entry is not purchasable.
            logger.warning("Metadata fetch failed for %s", key)
            return CatalogEntry(**entry)

        metadata = head.get("Metadata", {})
        return CatalogEntry(
            **entry,
            title=metadata.get("title"),
            description=metadata.get("description"),
            price=metadata.get("price"),
            pages=metadata.get("pages"),
            topics=metadata.get("topics"),
            file_type=metadata.get("filetype") or head.get("ContentType"),
        )

    async def presigned_download_url(self, key: str, expires_in: int) -> str:
        """Time-limited GET URL for ``key``."""
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Presign failed for %s: %s", key, e)
            raise StorageError(f"Failed to create download link for {key}") from e
