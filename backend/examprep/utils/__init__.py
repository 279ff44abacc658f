"""Utility functions for the ExamPrep backend."""

import base64
import binascii
import io
import time
from typing import Tuple

from PIL import Image, UnidentifiedImageError


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def validate_file_type(filename: str, allowed_extensions: list) -> Tuple[bool, str]:
    """Validate file type by extension."""
    file_ext = filename.split('.')[-1].lower()

    if file_ext not in allowed_extensions:
        return False, f"File type '{file_ext}' not allowed. Allowed: {allowed_extensions}"

    return True, "OK"


def validate_file_size(file_bytes: bytes, max_size_mb: int) -> Tuple[bool, str]:
    """Validate file size in MB."""
    file_size_mb = len(file_bytes) / (1024 * 1024)

    if file_size_mb > max_size_mb:
        return False, f"File size {file_size_mb:.1f} MB exceeds limit of {max_size_mb} MB"

    return True, "OK"


def format_time(seconds: int) -> str:
    """Countdown display, e.g. 600 -> "10:00", 65 -> "1:05"."""
    mins, secs = divmod(max(seconds, 0), 60)
    return f"{mins}:{secs:02d}"


def decode_image_uri(image_uri: str) -> bytes:
    """
    Decode an inline image.

    Accepts a data URI ("data:image/png;base64,....") or bare base64.

    Raises:
        ValueError: If the payload is not valid base64
    """
    payload = image_uri.split(",", 1)[1] if image_uri.startswith("data:") else image_uri
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}")


def to_jpeg_bytes(image_bytes: bytes, quality: int = 85) -> bytes:
    """
    Re-encode any Pillow-readable image as JPEG.

    JPEG input is passed through untouched.

    Raises:
        ValueError: If the bytes are not a readable image
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        if img.format == "JPEG":
            return image_bytes
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
        return buffer.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Unreadable image: {e}")
