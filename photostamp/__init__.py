"""
photostamp
==========
Stamps a watermark image onto JPEG and PNG files in place.

Modules:
    - core: Extension checks and the Watermarker compositor
    - config: Encoder settings

Usage:
    from photostamp import Watermarker, Point

    wm = Watermarker("logo.png")
    wm.mark_file("photo.jpg", Point(10, 10))
"""

import logging

__version__ = "1.0.0"
__app_name__ = "photostamp"

from .config import EncodeConfig
from .core import (
    ALLOWED_EXTENSIONS,
    Point,
    UnsupportedFormatError,
    WatermarkError,
    Watermarker,
    add_watermark,
    is_allowed_extension,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Version info
    "__version__",
    "__app_name__",

    # Config
    "EncodeConfig",

    # Core
    "ALLOWED_EXTENSIONS",
    "Point",
    "UnsupportedFormatError",
    "WatermarkError",
    "Watermarker",
    "add_watermark",
    "is_allowed_extension",
]
