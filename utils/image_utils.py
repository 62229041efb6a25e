"""Image helper utilities."""
from __future__ import annotations

import base64
import binascii
import io

from PIL import Image

from core.errors import ImageFetchError


def decode_base64_image(payload: str) -> bytes:
    """Decode a base64 image payload, tolerating whitespace and missing padding."""
    cleaned = "".join(payload.split())
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageFetchError(f"Invalid base64 image data: {exc}") from exc


def image_size(data: bytes) -> tuple[int, int]:
    """Return (width, height) in pixels of raster image bytes."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except Exception as exc:  # noqa: BLE001
        raise ImageFetchError(f"Cannot read image: {exc}") from exc
