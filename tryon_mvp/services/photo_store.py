"""Per-user profile photo storage."""

from ..errors import NotFound
from ..utils.images import detect_mime_type
from .blob_store import S3BlobStore


class PhotoStore:
    """One profile photo per user, kept in blob storage."""

    def __init__(self, blobs: S3BlobStore):
        self.blobs = blobs

    @staticmethod
    def key_for(user_id: str) -> str:
        return f"users/{user_id}/profile"

    async def store_user_photo(self, user_id: str, image_bytes: bytes) -> str:
        """Replace the user's photo; returns its URL."""
        return await self.blobs.upload(
            self.key_for(user_id),
            image_bytes,
            content_type=detect_mime_type(image_bytes, default="image/jpeg"),
        )

    async def get_user_photo(self, user_id: str) -> str:
        """URL of the user's photo.

        Raises:
            NotFound: the user has not uploaded a photo yet
        """
        key = self.key_for(user_id)
        if not await self.blobs.exists(key):
            raise NotFound(f"No photo stored for user {user_id}")
        return self.blobs.url_for(key)

    async def read_user_photo(self, user_id: str) -> bytes:
        return await self.blobs.download(self.key_for(user_id))
