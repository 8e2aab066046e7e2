"""Try-on recomputation controller."""

import asyncio
import logging

from PIL import Image

from ..errors import (
    DimensionMismatch,
    InvalidImage,
    ModelUnavailable,
    NotFound,
    SegmentationFailed,
    StorageError,
    TryOnError,
)
from ..models import ClothingItem, PlacementParameters, Preview, PreviewStage, ProcessingState
from ..services.clothing_loader import ClothingImageLoader
from ..services.segmenter import ModelStatus, PersonSegmenter
from .compositor import compose
from .masking import apply_mask

logger = logging.getLogger(__name__)


class TryOnController:
    """State machine behind one try-on view.

    Flow:
    1. New photo -> segmentation -> masking (once the model is ready)
    2. Clothing selected -> composite over the masked photo
    3. Placement adjusted -> composite again (segmentation is not repeated)

    Every photo bumps a generation counter, and every composite request bumps
    another. A result is only applied if both counters still match the ones
    captured when its work started, so results from a superseded photo or a
    superseded composite are dropped when they arrive.

    Segmentation/composite failures put the controller in ERROR; the preview
    then falls back to the best image already available.
    """

    def __init__(
        self,
        segmenter: PersonSegmenter,
        clothing_loader: ClothingImageLoader,
        placement: PlacementParameters | None = None,
    ):
        self.segmenter = segmenter
        self.clothing_loader = clothing_loader
        self.placement = placement or PlacementParameters()

        self.state = ProcessingState.IDLE
        self.error: str | None = None

        self.source_image: Image.Image | None = None
        self.masked_image: Image.Image | None = None
        self.combined_image: Image.Image | None = None
        self.clothing_item: ClothingItem | None = None

        self._photo_generation = 0
        self._compose_generation = 0
        self._pending_photo = False

    @property
    def is_processing(self) -> bool:
        return self.state is ProcessingState.LOADING

    @property
    def preview(self) -> Preview:
        """Best available image: combined, then masked, then the raw photo."""
        if self.combined_image is not None:
            return Preview(PreviewStage.COMBINED, self.combined_image)
        if self.masked_image is not None:
            return Preview(PreviewStage.MASKED, self.masked_image)
        if self.source_image is not None:
            return Preview(PreviewStage.SOURCE, self.source_image)
        return Preview(PreviewStage.PLACEHOLDER)

    async def attach_model(self) -> None:
        """Wait for the shared model, then process a photo submitted before it was ready."""
        try:
            await self.segmenter.load()
        except ModelUnavailable as e:
            if self._pending_photo:
                self._fail(e)
            return

        if self._pending_photo and self.source_image is not None:
            await self._segment(self._photo_generation)

    async def submit_photo(self, image: Image.Image) -> None:
        """Start a new cycle for a freshly uploaded photo."""
        self._photo_generation += 1
        generation = self._photo_generation

        self.source_image = image
        self.masked_image = None
        self.combined_image = None
        self.error = None
        self.state = ProcessingState.LOADING

        if self.segmenter.status is ModelStatus.FAILED:
            # Still pending: a later attach_model may load the model and segment it
            self._pending_photo = True
            self._fail(ModelUnavailable(self.segmenter.load_error or "Segmentation model failed to load"))
            return

        if not self.segmenter.is_ready:
            logger.info("Photo %d waiting for the segmentation model", generation)
            self._pending_photo = True
            return

        await self._segment(generation)

    async def select_clothing(self, item: ClothingItem | None) -> None:
        """Switch the clothing overlay; `None` removes it."""
        self.clothing_item = item
        self.combined_image = None

        if item is None:
            self._compose_generation += 1  # Cancel any composite in flight
            self._settle()
            return

        if self.masked_image is None:
            # Composited as soon as segmentation finishes
            return

        await self._compose()

    async def adjust_placement(self, **changes: float) -> None:
        """Update scale/offsets (clamped) and recomposite if possible."""
        self.placement = self.placement.updated(**changes)
        if self.masked_image is not None and self.clothing_item is not None:
            await self._compose()

    async def _segment(self, generation: int) -> None:
        self._pending_photo = False
        source = self.source_image
        self.state = ProcessingState.LOADING

        try:
            mask = await self.segmenter.segment(source)
            if generation != self._photo_generation:
                logger.debug("Discarding segmentation for superseded photo %d", generation)
                return
            masked = apply_mask(source, mask)
        except (ModelUnavailable, SegmentationFailed, DimensionMismatch) as e:
            if generation != self._photo_generation:
                return
            self._fail(e)
            return

        self.masked_image = masked
        logger.info("Photo %d segmented (%dx%d)", generation, masked.width, masked.height)

        if self.clothing_item is not None:
            await self._compose()
        else:
            self._settle()

    async def _compose(self) -> None:
        self._compose_generation += 1
        compose_generation = self._compose_generation
        photo_generation = self._photo_generation

        item = self.clothing_item
        masked = self.masked_image
        placement = self.placement
        self.state = ProcessingState.LOADING

        def is_stale() -> bool:
            return (
                compose_generation != self._compose_generation
                or photo_generation != self._photo_generation
            )

        try:
            clothing = await self.clothing_loader.load(item.image_url)
            if is_stale():
                return
            combined = await asyncio.to_thread(compose, masked, clothing, placement)
        except (NotFound, StorageError, InvalidImage) as e:
            if is_stale():
                return
            self._fail(e)
            return

        if is_stale():
            logger.debug("Discarding superseded composite %d", compose_generation)
            return

        self.combined_image = combined
        self._settle()

    def _settle(self) -> None:
        if self.source_image is None:
            self.state = ProcessingState.IDLE
        elif self.masked_image is None and self.error is not None:
            self.state = ProcessingState.ERROR
        elif self._pending_photo:
            self.state = ProcessingState.LOADING
        elif self.masked_image is None:
            self.state = ProcessingState.LOADING
        else:
            self.state = ProcessingState.READY
            self.error = None

    def _fail(self, error: TryOnError) -> None:
        logger.warning("Try-on processing failed: %s", error)
        self.state = ProcessingState.ERROR
        self.error = str(error)

    def close(self) -> None:
        """Drop all images held by this view."""
        self._photo_generation += 1
        self._compose_generation += 1
        self._pending_photo = False
        self.source_image = None
        self.masked_image = None
        self.combined_image = None
        self.clothing_item = None
        self.state = ProcessingState.IDLE
        self.error = None
