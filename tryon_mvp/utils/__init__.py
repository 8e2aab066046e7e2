"""Utility helpers."""

from .images import decode_data_url, decode_image, detect_mime_type, encode_png, to_data_url

__all__ = [
    "decode_data_url",
    "decode_image",
    "detect_mime_type",
    "encode_png",
    "to_data_url",
]
