"""Segmentation + compositing pipeline."""

from .compositor import compose
from .controller import TryOnController
from .masking import apply_mask

__all__ = ["apply_mask", "compose", "TryOnController"]
