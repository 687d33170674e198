"""Image decoding via Pillow — raw source bytes to PixelBuffer."""

import base64
import binascii
import io
import logging
import os
import warnings

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from imaging.buffer import PixelBuffer
from imaging.errors import DecodeError
from security import MAX_PIXELS, validate_dimensions

logger = logging.getLogger(__name__)

# Pillow raises DecompressionBombError above 2x this value and warns above it.
Image.MAX_IMAGE_PIXELS = MAX_PIXELS

_REMOTE_PREFIXES = ("http://", "https://", "ftp://")

# 16/32-bit integer grayscale; convert("RGBA") would saturate these
_WIDE_GRAY_MODES = ("I", "I;16", "I;16B", "I;16L", "I;16N")


def _decode_data_url(url: str) -> bytes:
    header, sep, payload = url.partition(",")
    if not sep:
        raise DecodeError("Malformed data URL")
    if not header.endswith(";base64"):
        raise DecodeError("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Malformed data URL payload") from e


def read_source(source) -> bytes:
    """Read an opaque image source into bytes.

    Accepts bytes-like objects, binary file objects, filesystem paths and
    base64 data URLs. Remote URLs are refused: the core does no network I/O.

    Raises:
        DecodeError: Source is empty, unreadable or of an unsupported kind.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
    elif isinstance(source, str) and source.startswith("data:"):
        data = _decode_data_url(source)
    elif isinstance(source, str) and source.lower().startswith(_REMOTE_PREFIXES):
        raise DecodeError("Remote image sources are not supported")
    elif isinstance(source, (str, os.PathLike)):
        try:
            with open(source, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.debug("Source read failed: %s", e)
            raise DecodeError("Failed to read file") from e
    elif hasattr(source, "read"):
        try:
            data = source.read()
        except OSError as e:
            raise DecodeError("Failed to read file") from e
        if not isinstance(data, (bytes, bytearray)):
            raise DecodeError("Source must be opened in binary mode")
        data = bytes(data)
    else:
        raise DecodeError(f"Unsupported source type: {type(source).__name__}")

    if not data:
        raise DecodeError("Source is empty")
    return data


def probe(data: bytes) -> dict:
    """Probe image bytes for metadata. Fast — reads only headers."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return {
                "ok": True,
                "width": img.width,
                "height": img.height,
                "format": img.format,
                "mode": img.mode,
                "frames": getattr(img, "n_frames", 1),
            }
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.debug("Probe failed: %s", e)
        return {"ok": False, "error": f"Failed to open image: {type(e).__name__}"}


def _to_rgba(img: Image.Image) -> np.ndarray:
    """Convert any Pillow mode to an (H, W, 4) uint8 array."""
    if img.mode in _WIDE_GRAY_MODES:
        wide = np.asarray(img).astype(np.int64)
        img = Image.fromarray(np.clip(wide >> 8, 0, 255).astype(np.uint8))
    return np.array(img.convert("RGBA"), dtype=np.uint8)


def decode_image(data: bytes) -> PixelBuffer:
    """Decode image bytes to an RGBA PixelBuffer at natural dimensions.

    Multi-frame images yield their first frame. EXIF orientation is applied,
    and 16-bit grayscale is scaled down to 8 bits.

    Raises:
        DecodeError: Empty, corrupt or unsupported data, or a decoded
            surface that would exceed MAX_PIXELS.
    """
    if not data:
        raise DecodeError("Source is empty")

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            with Image.open(io.BytesIO(data)) as img:
                errors = validate_dimensions(img.width, img.height)
                if errors:
                    raise DecodeError("; ".join(errors))
                img.seek(0)
                pixels = _to_rgba(ImageOps.exif_transpose(img))
    except (Image.DecompressionBombError, Image.DecompressionBombWarning) as e:
        raise DecodeError("Image dimensions exceed the decode limit") from e
    except UnidentifiedImageError as e:
        raise DecodeError("Source is not a decodable image") from e
    except MemoryError as e:
        raise DecodeError("Could not allocate a surface for this image") from e
    except (OSError, ValueError, SyntaxError) as e:
        # Truncated or corrupt payloads surface as OSError/SyntaxError from plugins
        raise DecodeError(f"Failed to decode image: {type(e).__name__}") from e

    logger.debug("Decoded %dx%d image", pixels.shape[1], pixels.shape[0])
    return PixelBuffer(pixels)
