"""Processing state and preview models for a try-on view."""

from dataclasses import dataclass
from enum import Enum

from PIL import Image


class ProcessingState(str, Enum):
    """Lifecycle of one segmentation + composite cycle."""
    IDLE = "idle"        # No photo yet
    LOADING = "loading"  # Model loading, or segmentation/composite running
    READY = "ready"      # Masked and/or combined image available
    ERROR = "error"      # Model load, segmentation or composite failed


class PreviewStage(str, Enum):
    """Which image the preview is showing."""
    COMBINED = "combined"
    MASKED = "masked"
    SOURCE = "source"
    PLACEHOLDER = "placeholder"


PLACEHOLDER_MESSAGE = "Upload your photo to start"


@dataclass(frozen=True)
class Preview:
    """The best image currently available for display."""
    stage: PreviewStage
    image: Image.Image | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.image is None
