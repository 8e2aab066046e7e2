# Test fixtures and configuration
import asyncio
import io
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tryon_mvp.config import ImageConfig, S3Config, SegmentationConfig  # noqa: E402
from tryon_mvp.errors import ModelUnavailable  # noqa: E402
from tryon_mvp.models import ClothingItem  # noqa: E402
from tryon_mvp.services import PersonSegmenter, S3BlobStore  # noqa: E402
from tryon_mvp.services.segmenter import ModelStatus  # noqa: E402


def make_person_image(width: int = 40, height: int = 60, color=(200, 150, 120)) -> Image.Image:
    """Flat-colored RGB 'photo' with a darker band so pixels differ."""
    img = Image.new("RGB", (width, height), color)
    img.paste((30, 60, 90), (0, height // 2, width, height // 2 + 4))
    return img


def center_mask(width: int, height: int) -> np.ndarray:
    """Foreground block in the middle of the frame."""
    mask = np.zeros((height, width), dtype=np.uint8)
    mask[height // 4: 3 * height // 4, width // 4: 3 * width // 4] = 255
    return mask


def png_bytes(image: Image.Image) -> bytes:
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


class FakeBackend:
    """Stands in for the ONNX model: returns a centered foreground block."""

    def __init__(self):
        self.calls = 0
        self.closed = False

    def predict(self, image: Image.Image) -> np.ndarray:
        self.calls += 1
        return center_mask(*image.size)

    def close(self) -> None:
        self.closed = True


class GatedSegmenter:
    """Segmenter whose results are released by the test, one image at a time."""

    def __init__(self, ready: bool = True):
        self.status = ModelStatus.READY if ready else ModelStatus.UNLOADED
        self.load_error = None
        self.calls = 0
        self._gates: dict[int, asyncio.Event] = {}
        self._loaded = asyncio.Event()
        self.fail_load = False

    @property
    def is_ready(self) -> bool:
        return self.status is ModelStatus.READY

    def _gate(self, image: Image.Image) -> asyncio.Event:
        return self._gates.setdefault(id(image), asyncio.Event())

    def release(self, image: Image.Image) -> None:
        self._gate(image).set()

    def finish_loading(self) -> None:
        self._loaded.set()

    async def load(self) -> None:
        if self.is_ready:
            return
        await self._loaded.wait()
        if self.fail_load:
            self.status = ModelStatus.FAILED
            self.load_error = "weights missing"
            raise ModelUnavailable("Segmentation model failed to load: weights missing")
        self.status = ModelStatus.READY

    async def segment(self, image: Image.Image) -> np.ndarray:
        self.calls += 1
        await self._gate(image).wait()
        return np.full((image.height, image.width), 255, dtype=np.uint8)


class FakeClothingLoader:
    """In-memory clothing images keyed by URL, optionally gated per URL."""

    def __init__(self, images: dict[str, Image.Image] | None = None, gated: bool = False):
        self.images = images or {}
        self.gated = gated
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []
        self._gates: dict[str, asyncio.Event] = {}

    def release(self, url: str) -> None:
        self._gates.setdefault(url, asyncio.Event()).set()

    async def load(self, image_url: str) -> Image.Image:
        self.calls.append(image_url)
        if self.gated:
            await self._gates.setdefault(image_url, asyncio.Event()).wait()
        if image_url in self.errors:
            raise self.errors[image_url]
        return self.images[image_url]

    def forget(self, image_url: str) -> None:
        pass

    async def close(self):
        pass


class FakeTable:
    """Records Supabase query-builder calls and returns canned rows."""

    def __init__(self, rows=None, error: Exception | None = None):
        self.rows = rows if rows is not None else []
        self.error = error
        self.inserted: list[dict] = []
        self.deleted = False
        self.filters: list[tuple] = []
        self.ordering: list[tuple] = []
        self._result = None

    def select(self, *_):
        self._result = self.rows
        return self

    def insert(self, record):
        self.inserted.append(record)
        self._result = [{"id": len(self.inserted), **record}]
        return self

    def delete(self):
        self.deleted = True
        self._result = []
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        if self._result is self.rows:
            self._result = [row for row in self.rows if str(row.get(column)) == str(value)]
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def execute(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self._result)


class FakeSupabase:
    def __init__(self, table: FakeTable):
        self._table = table
        self.auth = MagicMock()

    def table(self, name):
        return self._table


@pytest.fixture
def person_image():
    return make_person_image()


@pytest.fixture
def clothing_image():
    """Opaque red 20x10 clothing asset (aspect ratio 2.0)."""
    return Image.new("RGBA", (20, 10), (255, 0, 0, 255))


@pytest.fixture
def clothing_item():
    return ClothingItem(id="1", name="Red Tee", category="T-Shirts", image_url="https://cdn.test/red.png")


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def segmenter(fake_backend):
    """Segmenter wired to the fake backend (not loaded yet)."""
    return PersonSegmenter(SegmentationConfig(), backend_factory=lambda config: fake_backend)


@pytest.fixture
def clothing_loader(clothing_image):
    return FakeClothingLoader({"https://cdn.test/red.png": clothing_image})


@pytest.fixture
def image_config():
    return ImageConfig()


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def blob_store(s3_client):
    config = S3Config(bucket_name="tryon-test", region="us-east-1")
    return S3BlobStore(config, client=s3_client)


@pytest.fixture
def minimal_png_bytes():
    """1x1 red PNG."""
    return png_bytes(Image.new("RGB", (1, 1), (255, 0, 0)))
