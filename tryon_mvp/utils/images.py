"""Image decode/encode helpers shared by the pipeline and the API."""

import base64
import binascii
import io

from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import InvalidImage


def decode_data_url(data: str) -> bytes:
    """Decode a base64 data URL (or raw base64) into bytes."""
    if data.startswith("data:"):
        # Remove data URL prefix (e.g., "data:image/png;base64,")
        _, _, data = data.partition(",")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImage(f"Invalid base64 image data: {e}") from e


def to_data_url(png_bytes: bytes) -> str:
    return f"data:image/png;base64,{base64.b64encode(png_bytes).decode('utf-8')}"


def detect_mime_type(data: bytes, default: str = "application/octet-stream") -> str:
    """Detect an image MIME type from magic bytes."""
    if data[:3] == b'\xff\xd8\xff':
        return "image/jpeg"
    if data[:8] == b'\x89PNG\r\n\x1a\n':
        return "image/png"
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return "image/webp"
    if data[:6] in (b'GIF87a', b'GIF89a'):
        return "image/gif"
    return default


def decode_image(
    data: bytes,
    max_dimension: int | None = None,
    max_bytes: int | None = None,
) -> Image.Image:
    """Decode uploaded bytes into an RGB or RGBA image.

    EXIF orientation is applied. Images whose longer side exceeds
    `max_dimension` are downscaled (aspect ratio preserved), since
    segmentation quality and cost both depend on resolution.

    Raises:
        InvalidImage: empty, oversized or undecodable data
    """
    if not data:
        raise InvalidImage("Empty image upload")
    if max_bytes is not None and len(data) > max_bytes:
        raise InvalidImage(f"Image is {len(data)} bytes; the limit is {max_bytes}")

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        raise InvalidImage(f"Unable to decode image: {e}") from e

    # Keep transparency for clothing assets, drop it everywhere else
    if img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        img = img.convert("RGBA")
    elif img.mode != "RGB":
        img = img.convert("RGB")

    if max_dimension and max(img.size) > max_dimension:
        img = img.copy()
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    return img


def encode_png(image: Image.Image) -> bytes:
    """Encode an image as PNG (lossless, keeps alpha)."""
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()
