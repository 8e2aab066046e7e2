"""Data models for the try-on canvas service."""

from .catalog import (
    ALL_CATEGORIES,
    CATEGORIES,
    AuthSession,
    ClothingItem,
    HistoryRecord,
    UserProfile,
    categories,
    filter_by_category,
)
from .placement import PlacementParameters, PlacementRect, compute_rect
from .session import PLACEHOLDER_MESSAGE, Preview, PreviewStage, ProcessingState

__all__ = [
    "ALL_CATEGORIES",
    "CATEGORIES",
    "AuthSession",
    "ClothingItem",
    "HistoryRecord",
    "UserProfile",
    "categories",
    "filter_by_category",
    "PlacementParameters",
    "PlacementRect",
    "compute_rect",
    "PLACEHOLDER_MESSAGE",
    "Preview",
    "PreviewStage",
    "ProcessingState",
]
