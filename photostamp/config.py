"""
Encoder Configuration
=====================
Settings used when a composited image is written back to disk.

The defaults match the codec defaults, so a Watermarker built without
an explicit config re-encodes JPEG and PNG exactly as Pillow would.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class EncodeConfig:
    """Configuration for re-encoding a watermarked image."""
    jpeg_quality: int = 75  # 1-95
    png_compress_level: int = 6  # 0-9

    def __post_init__(self):
        if not 1 <= self.jpeg_quality <= 95:
            raise ValueError("JPEG quality must be between 1 and 95")

        if not 0 <= self.png_compress_level <= 9:
            raise ValueError("PNG compress level must be between 0 and 9")
