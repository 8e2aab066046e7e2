"""Services: segmentation model, image loading and the managed backend."""

from .auth import AuthService
from .blob_store import S3BlobStore
from .catalog_store import CatalogStore
from .clothing_loader import ClothingImageLoader
from .gateway import PersistenceGateway
from .history_store import HistoryStore
from .photo_store import PhotoStore
from .segmenter import ModelStatus, PersonSegmenter, RembgBackend, SegmentationBackend
from .supabase_client import create_supabase_client

__all__ = [
    "AuthService",
    "S3BlobStore",
    "CatalogStore",
    "ClothingImageLoader",
    "PersistenceGateway",
    "HistoryStore",
    "PhotoStore",
    "ModelStatus",
    "PersonSegmenter",
    "RembgBackend",
    "SegmentationBackend",
    "create_supabase_client",
]
