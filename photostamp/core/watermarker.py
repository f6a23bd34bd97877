"""
Image Watermarker
=================
Stamps a fixed watermark image onto JPEG and PNG images in place.

Technical Notes:
- The watermark is decoded once and kept as a read-only float RGBA array
- The target stays in its integer sample depth (8 or 16 bits); only the
  region under the watermark is blended in float64
- 16-bit PNGs go through OpenCV, since Pillow reduces 16-bit color to 8 bits
- The watermark's top-left corner lands on the given point; anything
  falling outside the target is clipped
- Decoding starts at the stream's current position, output is written
  from offset 0 without truncation, so a shorter encoding can leave stale
  bytes after the new end of image
"""

import io
import logging
from pathlib import Path
from typing import BinaryIO, NamedTuple, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from photostamp.config import EncodeConfig
from .formats import format_for_extension, format_for_path

logger = logging.getLogger(__name__)

# Pillow modes holding 16-bit single-channel samples
_WIDE_GRAY_MODES = ("I", "I;16", "I;16B", "I;16L", "I;16N")

# Offset of the bit depth byte in a PNG: signature, chunk length, "IHDR", width, height
_PNG_BIT_DEPTH_OFFSET = 24


class Point(NamedTuple):
    """Offset of the watermark's top-left corner on the target image."""
    x: int
    y: int


def _png_bit_depth(data: bytes) -> int:
    if len(data) <= _PNG_BIT_DEPTH_OFFSET or data[12:16] != b"IHDR":
        return 8
    return data[_PNG_BIT_DEPTH_OFFSET]


def _image_to_array(image: Image.Image) -> np.ndarray:
    """
    Convert a Pillow image into a writable (H, W, 4) RGBA array.

    16-bit grayscale yields uint16 samples at full range; every other mode
    goes through Pillow's RGBA conversion and yields uint8.
    """
    if image.mode in _WIDE_GRAY_MODES:
        gray = np.clip(np.asarray(image), 0, 65535).astype(np.uint16)
        return np.dstack([gray, gray, gray, np.full_like(gray, 65535)])

    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.array(image)


def _decode_png16(data: bytes) -> np.ndarray:
    """Decode a 16-bit PNG into a uint16 RGBA array."""
    pixels = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if pixels is None:
        raise OSError("cannot decode 16-bit PNG image")

    if pixels.dtype != np.uint16:
        pixels = pixels.astype(np.uint16) * 257

    opaque = np.uint16(65535)
    if pixels.ndim == 2:
        return np.dstack([pixels, pixels, pixels, np.full_like(pixels, opaque)])

    channels = pixels.shape[2]
    if channels == 2:
        gray, alpha = pixels[..., 0], pixels[..., 1]
        return np.dstack([gray, gray, gray, alpha])
    if channels == 3:
        # OpenCV orders channels BGR
        return np.dstack([pixels[..., ::-1], np.full(pixels.shape[:2], opaque, dtype=np.uint16)])
    return np.ascontiguousarray(pixels[..., [2, 1, 0, 3]])


def _decode(data: bytes, fmt: str) -> np.ndarray:
    """
    Decode JPEG/PNG bytes with the codec for fmt only.

    Returns:
        Writable RGBA array, uint16 for 16-bit PNGs and uint8 otherwise.

    Raises:
        PIL.UnidentifiedImageError: If the bytes are not a fmt image.
        OSError: If the image data is truncated or corrupt.
    """
    with Image.open(io.BytesIO(data), formats=[fmt]) as image:
        if fmt == "PNG" and _png_bit_depth(data) == 16:
            return _decode_png16(data)
        image.load()
        return _image_to_array(image)


def _to_8bit(pixels: np.ndarray) -> np.ndarray:
    if pixels.dtype == np.uint8:
        return pixels
    return ((pixels.astype(np.uint32) + 128) // 257).astype(np.uint8)


def _clip_region(
        dst_size: Tuple[int, int],
        src_size: Tuple[int, int],
        point: Point
) -> Optional[Tuple[int, int, int, int]]:
    """
    Intersect the watermark placed at point with the destination bounds.

    Returns:
        (left, top, right, bottom) in destination coordinates, or None if
        the watermark does not overlap the destination at all.
    """
    dst_w, dst_h = dst_size
    src_w, src_h = src_size

    left = max(point.x, 0)
    top = max(point.y, 0)
    right = min(point.x + src_w, dst_w)
    bottom = min(point.y + src_h, dst_h)

    if left >= right or top >= bottom:
        return None
    return left, top, right, bottom


def _blend_over(dst: np.ndarray, src: np.ndarray, point: Point) -> None:
    """
    Alpha-composite src over dst in place, src origin anchored at point.

    dst is an integer RGBA array; src is float RGBA in [0, 1]. Pixels of
    dst outside the clipped region are never touched.
    """
    region = _clip_region(
        (dst.shape[1], dst.shape[0]),
        (src.shape[1], src.shape[0]),
        point
    )
    if region is None:
        logger.debug("Watermark at %s lies outside the target, nothing drawn", point)
        return

    left, top, right, bottom = region
    logger.debug("Blending watermark into region %s", region)

    scale = float(np.iinfo(dst.dtype).max)
    top_layer = src[top - point.y:bottom - point.y, left - point.x:right - point.x]
    bottom_layer = dst[top:bottom, left:right].astype(np.float64) / scale

    src_a = top_layer[..., 3:4]
    dst_a = bottom_layer[..., 3:4]

    out_a = src_a + dst_a * (1.0 - src_a)
    premultiplied = top_layer[..., :3] * src_a + bottom_layer[..., :3] * dst_a * (1.0 - src_a)

    with np.errstate(divide="ignore", invalid="ignore"):
        out_rgb = np.where(out_a > 0.0, premultiplied / out_a, 0.0)

    blended = np.concatenate([out_rgb, out_a], axis=2)
    dst[top:bottom, left:right] = np.clip(np.rint(blended * scale), 0, scale).astype(dst.dtype)


class Watermarker:
    """
    Overlays one watermark image onto JPEG/PNG targets.

    The watermark is loaded once at construction and shared, read-only,
    by every mark call. Calls keep no state between them, so one instance
    can serve several threads as long as each works on its own file.
    """

    def __init__(
            self,
            path: Union[str, Path],
            config: Optional[EncodeConfig] = None
    ):
        """
        Load the watermark image.

        Args:
            path: Path to a .jpg, .jpeg or .png watermark file. PNG alpha
                  is preserved and attenuates the watermark when blending.
            config: Encoder settings for marked images. Defaults to the
                    codec defaults.

        Raises:
            UnsupportedFormatError: If the extension is not JPEG or PNG.
                                    Raised before the file is opened.
            OSError: If the file cannot be opened or decoded.
        """
        path = Path(path)
        fmt = format_for_path(path)

        with open(path, "rb") as fp:
            data = fp.read()
        samples = _decode(data, fmt)

        pixels = samples.astype(np.float64) / np.iinfo(samples.dtype).max
        pixels.flags.writeable = False
        self._pixels = pixels
        self._config = config if config is not None else EncodeConfig()

        logger.debug("Loaded %s watermark %s (%dx%d)", fmt, path, *self.size)

    @property
    def size(self) -> Tuple[int, int]:
        """Watermark dimensions as (width, height)."""
        return self._pixels.shape[1], self._pixels.shape[0]

    @property
    def config(self) -> EncodeConfig:
        return self._config

    def composite(
            self,
            image: Image.Image,
            point: Tuple[int, int]
    ) -> Image.Image:
        """
        Blend the watermark onto an already decoded image.

        The input image is left untouched.

        Args:
            image: Target image, any Pillow mode.
            point: (x, y) where the watermark's top-left corner is placed.

        Returns:
            New 8-bit RGBA image with the target's dimensions.
        """
        # Pass 1: the target becomes the base layer as-is
        canvas = _image_to_array(image)
        # Pass 2: watermark over the base layer
        _blend_over(canvas, self._pixels, Point(*point))

        return Image.fromarray(_to_8bit(canvas))

    def mark(
            self,
            stream: BinaryIO,
            ext: str,
            point: Tuple[int, int]
    ) -> None:
        """
        Watermark the image held in stream and write it back in place.

        The image is read from the stream's current position; the result
        is written from offset 0.

        Args:
            stream: Readable, writable and seekable binary stream.
            ext: Extension naming the stream's image format, e.g. ".JPG".
            point: (x, y) offset of the watermark on the target.

        Raises:
            UnsupportedFormatError: If ext is not JPEG or PNG. The stream
                                    is not touched.
            OSError: If the image cannot be decoded or encoded, or the
                     stream cannot seek back to its start. Decode failures
                     happen before anything is written.
        """
        fmt = format_for_extension(ext)
        point = Point(*point)

        canvas = _decode(stream.read(), fmt)
        logger.debug(
            "Marking %s image (%dx%d, %d-bit) at %s",
            fmt, canvas.shape[1], canvas.shape[0], canvas.dtype.itemsize * 8, tuple(point)
        )
        _blend_over(canvas, self._pixels, point)

        stream.seek(0)
        self._encode(canvas, stream, fmt)

    def mark_file(
            self,
            path: Union[str, Path],
            point: Tuple[int, int]
    ) -> None:
        """
        Watermark an image file in place.

        The file must already exist; it is opened read-write without
        truncation and closed on every exit path.

        Raises:
            UnsupportedFormatError: If the extension is not JPEG or PNG.
            FileNotFoundError: If the file does not exist.
            OSError: On decode, encode or write failure.
        """
        path = Path(path)
        format_for_path(path)

        with open(path, "r+b") as fp:
            self.mark(fp, path.suffix, point)

    def _encode(self, canvas: np.ndarray, stream: BinaryIO, fmt: str) -> None:
        """Write an RGBA canvas to stream in fmt using the configured encoder settings."""
        if canvas.dtype == np.uint16 and fmt == "PNG":
            self._encode_png16(canvas, stream)
            return

        image = Image.fromarray(_to_8bit(canvas))
        if fmt == "JPEG":
            image.convert("RGB").save(
                stream,
                format="JPEG",
                quality=self._config.jpeg_quality
            )
            return

        # Fully opaque results are stored without an alpha channel
        if canvas[..., 3].min() == 255:
            image = image.convert("RGB")
        image.save(
            stream,
            format="PNG",
            compress_level=self._config.png_compress_level
        )

    def _encode_png16(self, canvas: np.ndarray, stream: BinaryIO) -> None:
        """Write a uint16 RGBA canvas as a 16-bit PNG, gray when possible."""
        if canvas[..., 3].min() == 65535:
            red, green, blue = canvas[..., 0], canvas[..., 1], canvas[..., 2]
            if np.array_equal(red, green) and np.array_equal(green, blue):
                pixels = np.ascontiguousarray(red)
            else:
                pixels = np.ascontiguousarray(canvas[..., 2::-1])
        else:
            pixels = np.ascontiguousarray(canvas[..., [2, 1, 0, 3]])

        ok, encoded = cv2.imencode(
            ".png",
            pixels,
            [int(cv2.IMWRITE_PNG_COMPRESSION), self._config.png_compress_level]
        )
        if not ok:
            raise OSError("cannot encode 16-bit PNG image")
        stream.write(encoded.tobytes())


# Convenience function for simple usage
def add_watermark(
        image_path: Union[str, Path],
        watermark_path: Union[str, Path],
        point: Tuple[int, int],
        config: Optional[EncodeConfig] = None
) -> None:
    """
    Convenience function to stamp one image file in place.

    Args:
        image_path: JPEG/PNG file to watermark; overwritten in place.
        watermark_path: JPEG/PNG watermark image.
        point: (x, y) offset of the watermark's top-left corner.
        config: Optional encoder settings.
    """
    watermarker = Watermarker(watermark_path, config=config)
    watermarker.mark_file(image_path, point)
