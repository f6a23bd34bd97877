"""
Core Module - Watermark Logic
=============================
Format dispatch and the watermark compositor.
No filesystem layout or configuration loading lives here.
"""

from .formats import (
    ALLOWED_EXTENSIONS,
    UnsupportedFormatError,
    WatermarkError,
    is_allowed_extension,
)
from .watermarker import Point, Watermarker, add_watermark

__all__ = [
    "ALLOWED_EXTENSIONS",
    "Point",
    "UnsupportedFormatError",
    "WatermarkError",
    "Watermarker",
    "add_watermark",
    "is_allowed_extension",
]
