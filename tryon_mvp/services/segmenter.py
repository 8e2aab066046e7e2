"""Person segmentation adapter around a pre-trained background-removal model."""

import asyncio
import gc
import logging
from enum import Enum
from typing import Callable, Protocol

import numpy as np
from PIL import Image

from ..config import SegmentationConfig
from ..errors import ModelUnavailable, SegmentationFailed

logger = logging.getLogger(__name__)


class SegmentationBackend(Protocol):
    """A loaded segmentation model."""

    def predict(self, image: Image.Image) -> np.ndarray:
        """Return a foreground mask (uint8, 0-255) for an RGB image."""
        ...

    def close(self) -> None:
        """Release the model and any accelerator memory it holds."""
        ...


class RembgBackend:
    """rembg session (ONNX Runtime) running a human segmentation model."""

    def __init__(self, model_name: str):
        from rembg import new_session

        self.model_name = model_name
        self.session = new_session(model_name)

    def predict(self, image: Image.Image) -> np.ndarray:
        from rembg import remove

        mask = remove(image.convert("RGB"), session=self.session, only_mask=True)
        return np.asarray(mask.convert("L"), dtype=np.uint8)

    def close(self) -> None:
        self.session = None


BACKENDS: dict[str, Callable[[SegmentationConfig], SegmentationBackend]] = {
    "rembg": lambda config: RembgBackend(config.model_name),
}


class ModelStatus(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class PersonSegmenter:
    """Loads the segmentation model once and serves masks from it.

    One instance is shared by every try-on view in the process. Inference
    runs in a worker thread so the event loop stays responsive.
    """

    def __init__(
        self,
        config: SegmentationConfig,
        backend_factory: Callable[[SegmentationConfig], SegmentationBackend] | None = None,
    ):
        self.config = config
        if backend_factory is None:
            if config.backend not in BACKENDS:
                raise ValueError(f"Unknown segmentation backend: {config.backend}")
            backend_factory = BACKENDS[config.backend]
        self._backend_factory = backend_factory
        self._backend: SegmentationBackend | None = None
        self._load_task: asyncio.Task | None = None
        self.status = ModelStatus.UNLOADED
        self.load_error: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.status is ModelStatus.READY

    async def load(self) -> None:
        """Load the model; a no-op once ready, shared while in flight.

        Raises:
            ModelUnavailable: the model failed to load
        """
        if self.status is ModelStatus.READY:
            return
        if self._load_task is None or self._load_task.done():
            # Drop whatever a previous failed attempt left behind
            self._release_backend()
            self._load_task = asyncio.create_task(self._load())
        await asyncio.shield(self._load_task)

    async def reload(self) -> None:
        """Release the current model and load a fresh instance."""
        if self._load_task is not None and not self._load_task.done():
            await asyncio.shield(self._load_task)
        self.release()
        await self.load()

    async def _load(self) -> None:
        self.status = ModelStatus.LOADING
        self.load_error = None
        logger.info("Loading segmentation model %s (%s)", self.config.model_name, self.config.backend)
        try:
            backend = await asyncio.to_thread(self._backend_factory, self.config)
        except Exception as e:
            self.status = ModelStatus.FAILED
            self.load_error = str(e)
            logger.error("Failed to load segmentation model: %s", e)
            raise ModelUnavailable(f"Segmentation model failed to load: {e}") from e

        self._backend = backend
        self.status = ModelStatus.READY
        logger.info("Segmentation model loaded")

    async def segment(self, image: Image.Image) -> np.ndarray:
        """Compute a foreground mask with the same pixel size as `image`.

        Raises:
            ModelUnavailable: called before the model loaded, or after it failed
            SegmentationFailed: the model raised on this input
        """
        backend = self._backend
        if self.status is not ModelStatus.READY or backend is None:
            reason = f": {self.load_error}" if self.load_error else ""
            raise ModelUnavailable(f"Segmentation model is {self.status.value}{reason}")

        try:
            mask = await asyncio.to_thread(backend.predict, image)
            return self._postprocess(mask, image.size)
        except Exception as e:
            logger.warning("Segmentation failed for %dx%d image: %s", image.width, image.height, e)
            raise SegmentationFailed(str(e)) from e

    def _postprocess(self, mask: np.ndarray, size: tuple[int, int]) -> np.ndarray:
        mask = np.asarray(mask)
        if mask.ndim == 3 and mask.shape[2] == 1:
            mask = mask[:, :, 0]
        if mask.ndim != 2:
            raise ValueError(f"Model returned a mask of shape {mask.shape}; expected a single channel")
        if mask.dtype.kind == "f":
            mask = np.clip(np.rint(mask * 255.0), 0, 255)
        mask = mask.astype(np.uint8)

        if (mask.shape[1], mask.shape[0]) != size:
            mask = np.asarray(Image.fromarray(mask).resize(size, Image.Resampling.BILINEAR))

        if self.config.threshold is not None:
            cutoff = self.config.threshold * 255.0
            mask = np.where(mask >= cutoff, 255, 0).astype(np.uint8)
        return mask

    def release(self) -> None:
        """Free the model. Safe to call more than once."""
        if self._backend is not None:
            logger.info("Releasing segmentation model")
        self._release_backend()
        self.status = ModelStatus.UNLOADED
        self.load_error = None

    def _release_backend(self) -> None:
        backend, self._backend = self._backend, None
        if backend is not None:
            backend.close()
            gc.collect()

    async def __aenter__(self) -> "PersonSegmenter":
        await self.load()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()
