"""
Image Formats
=============
Extension allow-list and extension-to-codec dispatch.

Technical Notes:
- The format is chosen from the file extension only, never by sniffing
  the content. A .png file holding JPEG bytes fails to decode.
- Lookups are case-insensitive; extensions always carry the leading dot.
"""

from pathlib import Path
from typing import Union


class WatermarkError(Exception):
    """Base class for errors raised by photostamp."""


class UnsupportedFormatError(WatermarkError, ValueError):
    """Raised when an image extension is not JPEG or PNG."""

    def __init__(self, ext: str):
        super().__init__(f"Unsupported watermark image type: {ext!r}")
        self.ext = ext


# Extension -> Pillow format name
_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
}

ALLOWED_EXTENSIONS = frozenset(_FORMATS)


def is_allowed_extension(ext: str) -> bool:
    """
    Check whether images with this extension can be watermarked.

    Args:
        ext: File extension including the leading dot, e.g. ".JPG".

    Returns:
        True for .jpg, .jpeg and .png in any letter case.

    Raises:
        ValueError: If ext is empty or does not start with ".".
    """
    if not ext:
        raise ValueError("Extension cannot be empty")

    if not ext.startswith("."):
        raise ValueError(f"Extension must start with '.': {ext!r}")

    return ext.lower() in ALLOWED_EXTENSIONS


def format_for_extension(ext: str) -> str:
    """Return the Pillow format name for ext, or raise UnsupportedFormatError."""
    try:
        return _FORMATS[ext.lower()]
    except KeyError:
        raise UnsupportedFormatError(ext) from None


def format_for_path(path: Union[str, Path]) -> str:
    return format_for_extension(Path(path).suffix)
