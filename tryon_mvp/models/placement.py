"""Clothing placement parameters and geometry."""

import math
from dataclasses import dataclass

from pydantic import BaseModel, Field, field_validator


SCALE_RANGE = (0.5, 1.2)
OFFSET_Y_RANGE = (0.1, 0.5)
OFFSET_X_RANGE = (-0.2, 0.2)


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return min(max(value, low), high)


class PlacementParameters(BaseModel):
    """User-tunable overlay placement, as fractions of the canvas size.

    Out-of-range values are clamped rather than rejected: every value inside
    the ranges is a valid placement, so clamping only pulls an overlay back
    to the nearest one the sliders could produce.
    """

    scale: float = Field(default=0.8, description="Overlay width as a fraction of canvas width")
    offset_y: float = Field(default=0.25, description="Top edge as a fraction of canvas height")
    offset_x: float = Field(default=0.0, description="Horizontal shift as a fraction of canvas width")

    @field_validator("scale", "offset_y", "offset_x")
    @classmethod
    def _finite_and_clamped(cls, value: float, info) -> float:
        if not math.isfinite(value):
            raise ValueError(f"{info.field_name} must be a finite number")
        bounds = {
            "scale": SCALE_RANGE,
            "offset_y": OFFSET_Y_RANGE,
            "offset_x": OFFSET_X_RANGE,
        }[info.field_name]
        return _clamp(value, bounds)

    def updated(self, **changes: float) -> "PlacementParameters":
        """Return a copy with `changes` applied (and clamped)."""
        return PlacementParameters(**{**self.model_dump(), **changes})


@dataclass(frozen=True)
class PlacementRect:
    """Destination rectangle of the overlay, in canvas pixels (may exceed the canvas)."""
    x: float
    y: float
    width: float
    height: float

    def to_pixels(self) -> tuple[int, int, int, int]:
        """Rounded (x, y, width, height); size is at least 1x1."""
        return (
            round(self.x),
            round(self.y),
            max(1, round(self.width)),
            max(1, round(self.height)),
        )


def compute_rect(
    canvas_width: float,
    canvas_height: float,
    clothing_aspect_ratio: float,
    params: PlacementParameters,
) -> PlacementRect:
    """Place the overlay on a canvas.

    The overlay keeps the clothing image's proportions: its height follows
    from the scaled width and `clothing_aspect_ratio` (width / height).
    The rectangle is not clipped to the canvas.
    """
    if not math.isfinite(clothing_aspect_ratio) or clothing_aspect_ratio <= 0:
        raise ValueError(f"Invalid clothing aspect ratio: {clothing_aspect_ratio}")

    width = canvas_width * params.scale
    height = width / clothing_aspect_ratio
    x = (canvas_width - width) / 2 + params.offset_x * canvas_width
    y = canvas_height * params.offset_y
    return PlacementRect(x=x, y=y, width=width, height=height)
