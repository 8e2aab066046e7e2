"""Masking stage: cut the person out of the source photo."""

import numpy as np
from PIL import Image

from ..errors import DimensionMismatch


def _mask_to_array(mask: np.ndarray | Image.Image) -> np.ndarray:
    if isinstance(mask, Image.Image):
        return np.asarray(mask.convert("L"), dtype=np.uint8)

    mask = np.asarray(mask)
    if mask.ndim == 3 and mask.shape[2] == 1:
        mask = mask[:, :, 0]
    if mask.ndim != 2:
        raise ValueError(f"Mask must be 2-D, got shape {mask.shape}")
    if mask.dtype.kind == "f":
        # Soft mask in [0, 1]
        return np.clip(np.rint(mask * 255.0), 0, 255).astype(np.uint8)
    return np.clip(mask, 0, 255).astype(np.uint8)


def apply_mask(image: Image.Image, mask: np.ndarray | Image.Image) -> Image.Image:
    """Return a new RGBA image with alpha = mask and RGB = the source RGB.

    Args:
        image: Source photo (any mode; converted, never mutated)
        mask: Per-pixel foreground opacity, shape (height, width), 0-255

    Raises:
        DimensionMismatch: mask and image sizes differ
    """
    alpha = _mask_to_array(mask)
    mask_size = (alpha.shape[1], alpha.shape[0])
    if mask_size != image.size:
        raise DimensionMismatch(image.size, mask_size)

    rgb = image if image.mode in ("RGB", "RGBA") else image.convert("RGB")
    masked = rgb.convert("RGBA")  # Always a new image
    masked.putalpha(Image.fromarray(alpha))
    return masked
