"""Error taxonomy for the try-on service."""


class TryOnError(Exception):
    """Base class for all try-on errors."""


class ModelUnavailable(TryOnError):
    """The segmentation model is not loaded, or failed to load."""


class SegmentationFailed(TryOnError):
    """The segmentation model raised while processing an image."""


class DimensionMismatch(TryOnError):
    """A mask does not match the size of the image it is applied to."""

    def __init__(self, image_size: tuple[int, int], mask_size: tuple[int, int]):
        self.image_size = image_size
        self.mask_size = mask_size
        super().__init__(
            f"Mask size {mask_size[0]}x{mask_size[1]} does not match "
            f"image size {image_size[0]}x{image_size[1]}"
        )


class InvalidImage(TryOnError):
    """Uploaded bytes could not be decoded, or exceed the upload bounds."""


class AuthError(TryOnError):
    """Authentication failed; `reason` is the provider's message."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class StorageError(TryOnError):
    """Upload, download or delete against the managed backend failed."""


class NotFound(TryOnError):
    """A photo, catalog item or stored object does not exist."""
