"""Clothing catalog backed by a Supabase table and S3 images."""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone

from supabase import Client

from ..errors import NotFound, StorageError
from ..models import CATEGORIES, ClothingItem, filter_by_category
from ..utils.images import detect_mime_type
from .blob_store import S3BlobStore

logger = logging.getLogger(__name__)


def _safe_filename(filename: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", filename).strip("._")
    return name or "image"


class CatalogStore:
    """Reads and writes `ClothingItem` records.

    Creating an item uploads its image first and then inserts the record.
    Deleting removes the record first; removing the image afterwards is
    best-effort.
    """

    def __init__(self, client: Client, blobs: S3BlobStore, table: str = "clothing_items"):
        self.client = client
        self.blobs = blobs
        self.table = table

    async def list_clothing_items(self, category: str | None = None) -> list[ClothingItem]:
        def _select():
            return self.client.table(self.table).select("*").execute()

        try:
            response = await asyncio.to_thread(_select)
        except Exception as e:
            raise StorageError(f"Failed to list clothing items: {e}") from e

        items = [ClothingItem(**row) for row in response.data or []]
        return filter_by_category(items, category)

    async def get_clothing_item(self, item_id: str) -> ClothingItem:
        def _select():
            return self.client.table(self.table).select("*").eq("id", item_id).execute()

        try:
            response = await asyncio.to_thread(_select)
        except Exception as e:
            raise StorageError(f"Failed to load clothing item {item_id}: {e}") from e

        if not response.data:
            raise NotFound(f"Clothing item not found: {item_id}")
        return ClothingItem(**response.data[0])

    async def create_clothing_item(
        self,
        name: str,
        category: str,
        image_bytes: bytes,
        filename: str = "image.png",
    ) -> ClothingItem:
        """Upload the image and add a catalog record for it.

        Raises:
            ValueError: missing name/image or unknown category
            StorageError: upload or insert failed
        """
        name = name.strip()
        if not name or not image_bytes:
            raise ValueError("Name and image are required")
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category {category!r}; expected one of {', '.join(CATEGORIES)}")

        storage_key = f"clothing/{int(time.time() * 1000)}_{_safe_filename(filename)}"
        image_url = await self.blobs.upload(
            storage_key,
            image_bytes,
            content_type=detect_mime_type(image_bytes, default="image/png"),
        )

        record = {
            "name": name,
            "category": category,
            "image_url": image_url,
            "storage_key": storage_key,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        def _insert():
            return self.client.table(self.table).insert(record).execute()

        try:
            response = await asyncio.to_thread(_insert)
        except Exception as e:
            await self.blobs.discard(storage_key)
            raise StorageError(f"Failed to add clothing item {name!r}: {e}") from e

        item = ClothingItem(**response.data[0])
        logger.info("Added clothing item %s (%s)", item.id, item.name)
        return item

    async def delete_clothing_item(self, item_id: str) -> None:
        """Delete the record, then its image (image failures are only logged)."""
        item = await self.get_clothing_item(item_id)

        def _delete():
            return self.client.table(self.table).delete().eq("id", item_id).execute()

        try:
            await asyncio.to_thread(_delete)
        except Exception as e:
            raise StorageError(f"Failed to delete clothing item {item_id}: {e}") from e
        logger.info("Deleted clothing item %s (%s)", item.id, item.name)

        if item.storage_key:
            try:
                await self.blobs.delete(item.storage_key)
            except StorageError as e:
                logger.error("Could not delete image for clothing item %s: %s", item_id, e)
