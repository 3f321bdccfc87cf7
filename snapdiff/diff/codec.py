"""PNG encode/decode helpers."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

from snapdiff.errors import ImageDecodeError


def decode_png(data: bytes) -> Image.Image:
    """Decode image bytes into an RGBA image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
