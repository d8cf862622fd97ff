"""Upload checks for submitted photos: MIME type, size, decodability."""

from __future__ import annotations

import io
from typing import Optional

from PIL import Image, UnidentifiedImageError

from seek.errors import ValidationError


DEFAULT_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/heic")
# Pillow cannot decode HEIC without a plugin; those are size-checked only.
_DECODABLE = {"image/jpeg", "image/jpg", "image/png", "image/webp"}


def validate_image(photo_bytes: bytes, mime_type: str, config: Optional[dict] = None) -> None:
    """Reject uploads the adjudicator must never see.

    Parameters (via *config* dict, the ``image`` policy section):
        allowed_mime_types : list[str] — accepted types
        min_bytes          : int — smallest accepted upload (default 10 KB)
        max_bytes          : int — largest accepted upload (default 20 MB)

    Raises:
        ValidationError: On a disallowed type, out-of-range size, or bytes
            that do not decode as the claimed raster format.
    """
    config = config or {}
    allowed = tuple(config.get("allowed_mime_types", DEFAULT_MIME_TYPES))
    min_bytes = config.get("min_bytes", 10 * 1024)
    max_bytes = config.get("max_bytes", 20 * 1024 * 1024)

    mime = (mime_type or "").lower()
    if mime not in allowed:
        raise ValidationError(f"Unsupported image type '{mime_type}'. Allowed: {list(allowed)}")
    size = len(photo_bytes)
    if size < min_bytes:
        raise ValidationError(f"Image too small: {size} bytes (minimum {min_bytes})")
    if size > max_bytes:
        raise ValidationError(f"Image too large: {size} bytes (maximum {max_bytes})")

    if mime in _DECODABLE:
        try:
            with Image.open(io.BytesIO(photo_bytes)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
            raise ValidationError(f"Image could not be decoded: {exc}") from exc
