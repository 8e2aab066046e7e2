"""Fetches and decodes catalog clothing images."""

import asyncio
import logging
from collections import OrderedDict
from pathlib import Path
from urllib.parse import urlparse

import httpx
from PIL import Image

from ..config import ImageConfig
from ..errors import NotFound, StorageError
from ..utils.images import decode_image

logger = logging.getLogger(__name__)


class ClothingImageLoader:
    """Downloads clothing images over HTTP (or reads local files) and keeps
    recently used ones decoded in memory."""

    def __init__(self, config: ImageConfig, static_dir: Path | None = None):
        self.config = config
        self.static_dir = static_dir
        self._client: httpx.AsyncClient | None = None
        self._cache: OrderedDict[str, Image.Image] = OrderedDict()

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.fetch_timeout)
        return self._client

    async def load(self, image_url: str) -> Image.Image:
        """Return the decoded clothing image at `image_url`.

        Raises:
            NotFound: the image does not exist
            StorageError: the download failed
            InvalidImage: the bytes are not a decodable image
        """
        cached = self._cache.get(image_url)
        if cached is not None:
            self._cache.move_to_end(image_url)
            return cached

        logger.debug("Fetching clothing image %s", image_url)
        data = await self._fetch(image_url)
        image = await asyncio.to_thread(
            decode_image,
            data,
            self.config.max_dimension,
            self.config.max_upload_bytes,
        )

        self._cache[image_url] = image
        while len(self._cache) > self.config.cache_size:
            self._cache.popitem(last=False)
        return image

    async def _fetch(self, image_url: str) -> bytes:
        parsed = urlparse(image_url)
        if parsed.scheme in ("http", "https"):
            return await self._download(image_url)
        return await asyncio.to_thread(self._read_local, parsed.path if parsed.scheme == "file" else image_url)

    async def _download(self, image_url: str) -> bytes:
        parsed = urlparse(image_url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        # Browser-like headers help with hotlink protection on CDN assets
        headers = {
            "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
            "Referer": origin + "/",
        }
        try:
            response = await self.client.get(image_url, headers=headers, follow_redirects=True)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to download {image_url}: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"Clothing image not found: {image_url}")
        if response.status_code != 200:
            raise StorageError(f"Failed to download {image_url}: HTTP {response.status_code}")
        return response.content

    def _read_local(self, path_str: str) -> bytes:
        path = Path(path_str)
        if self.static_dir is not None:
            # Site-relative paths such as "/clothing/tee.png"
            path = self.static_dir / path_str.lstrip("/")
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFound(f"Clothing image not found: {path}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def forget(self, image_url: str) -> None:
        """Drop a cached image (e.g. after its catalog item is deleted)."""
        self._cache.pop(image_url, None)

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
