"""Hands finished looks to persistent storage."""

from PIL import Image

from ..models import ClothingItem, HistoryRecord
from ..utils.images import encode_png
from .history_store import HistoryStore


class PersistenceGateway:
    """Saves a combined image together with the catalog item it shows."""

    def __init__(self, history: HistoryStore):
        self.history = history

    async def save_look(
        self,
        user_id: str,
        clothing_item: ClothingItem | None,
        combined_image: Image.Image | None,
    ) -> HistoryRecord:
        """Persist a look as PNG (alpha must survive).

        Raises:
            ValueError: nothing to save yet (no clothing or no composite)
        """
        if clothing_item is None or combined_image is None:
            raise ValueError("Select a clothing item and wait for the preview before saving")
        return await self.history.record_try_on(user_id, clothing_item, encode_png(combined_image))
