"""Saved try-on looks."""

import asyncio
import logging
import time
from datetime import datetime, timezone

from supabase import Client

from ..errors import StorageError
from ..models import ClothingItem, HistoryRecord
from .blob_store import S3BlobStore

logger = logging.getLogger(__name__)


class HistoryStore:
    """Stores combined images in S3 and a record per look in Supabase."""

    def __init__(self, client: Client, blobs: S3BlobStore, table: str = "try_on_history"):
        self.client = client
        self.blobs = blobs
        self.table = table

    async def record_try_on(
        self,
        user_id: str,
        clothing_item: ClothingItem,
        combined_png: bytes,
    ) -> HistoryRecord:
        key = f"tryons/{user_id}/{int(time.time() * 1000)}.png"
        image_url = await self.blobs.upload(key, combined_png, content_type="image/png")

        record = {
            "user_id": user_id,
            "clothing_id": clothing_item.id,
            "clothing_name": clothing_item.name,
            "image_url": image_url,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        def _insert():
            return self.client.table(self.table).insert(record).execute()

        try:
            response = await asyncio.to_thread(_insert)
        except Exception as e:
            await self.blobs.discard(key)
            raise StorageError(f"Failed to save try-on for user {user_id}: {e}") from e

        saved = HistoryRecord(**response.data[0])
        logger.info("Saved look %s for user %s", saved.id, user_id)
        return saved

    async def list_try_on_history(self, user_id: str) -> list[HistoryRecord]:
        """The user's saved looks, newest first."""
        def _select():
            return (
                self.client.table(self.table)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )

        try:
            response = await asyncio.to_thread(_select)
        except Exception as e:
            raise StorageError(f"Failed to load try-on history for user {user_id}: {e}") from e

        records = [HistoryRecord(**row) for row in response.data or []]
        # The query orders already; keep the guarantee for rows with equal timestamps
        return sorted(records, key=lambda r: r.created_at, reverse=True)
