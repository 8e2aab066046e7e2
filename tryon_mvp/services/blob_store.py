"""S3 blob storage for clothing images, user photos and saved looks."""

import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import S3Config
from ..errors import NotFound, StorageError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class S3BlobStore:
    """Thin async wrapper over a boto3 S3 client (calls run in a worker thread)."""

    def __init__(self, config: S3Config, client=None):
        self.config = config
        self._client = client

    @property
    def client(self):
        """Get or create the boto3 client."""
        if self._client is None:
            if not self.config.bucket_name:
                raise StorageError("S3 bucket is not configured (TRYON_S3__BUCKET_NAME)")
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self.config.access_key_id,
                aws_secret_access_key=self.config.secret_access_key,
                region_name=self.config.region,
            )
        return self._client

    def url_for(self, key: str) -> str:
        return f"{self.config.base_url}/{key}"

    async def upload(self, key: str, data: bytes, content_type: str = "image/png") -> str:
        """Store `data` under `key` and return its public URL."""
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.config.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed for %s: %s", key, e)
            raise StorageError(f"Upload failed for {key}: {e}") from e

        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return self.url_for(key)

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.config.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return False
            raise StorageError(f"Lookup failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Lookup failed for {key}: {e}") from e
        return True

    async def download(self, key: str) -> bytes:
        """Fetch the bytes stored under `key`.

        Raises:
            NotFound: no object under `key`
            StorageError: any other failure
        """
        def _get() -> bytes:
            response = self.client.get_object(Bucket=self.config.bucket_name, Key=key)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_get)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise NotFound(f"No stored object at {key}") from e
            raise StorageError(f"Download failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Download failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.config.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Delete failed for {key}: {e}") from e
        logger.info("Deleted %s", key)

    async def discard(self, key: str) -> None:
        """Best-effort delete of an object nothing refers to; failures are only logged."""
        try:
            await self.delete(key)
        except StorageError as e:
            logger.error("Could not remove orphaned object %s: %s", key, e)
