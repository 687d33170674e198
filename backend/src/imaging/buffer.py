"""PixelBuffer — an RGBA raster with explicit width/height."""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from imaging.errors import DimensionMismatchError, InvalidParameterError

CHANNELS = 4


@dataclass(frozen=True)
class PixelBuffer:
    """Interleaved RGBA samples, shape (H, W, 4), dtype uint8.

    The core never mutates a buffer it did not create; transforms return
    a new PixelBuffer.
    """

    pixels: np.ndarray

    def __post_init__(self):
        check_pixels(self.pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def resolution(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def samples(self) -> np.ndarray:
        """Flat RGBA view, length width * height * 4."""
        return self.pixels.reshape(-1)

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.pixels.copy())

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        r, g, b, a = (int(v) for v in self.pixels[y, x])
        return r, g, b, a

    @classmethod
    def from_samples(
        cls, width: int, height: int, samples: Sequence[int] | np.ndarray
    ) -> "PixelBuffer":
        """Build a buffer from a flat RGBA sequence.

        Raises:
            InvalidParameterError: Non-positive dimensions, or samples that are not
                whole numbers in [0, 255].
            DimensionMismatchError: len(samples) != width * height * 4.
        """
        if width <= 0 or height <= 0:
            raise InvalidParameterError(
                f"Dimensions must be positive, got {width}x{height}"
            )
        flat = np.asarray(samples)
        expected = width * height * CHANNELS
        if flat.ndim != 1 or flat.size != expected:
            raise DimensionMismatchError(
                f"Sample buffer has {flat.size} values, expected {expected} "
                f"for {width}x{height} RGBA"
            )
        if flat.dtype != np.uint8:
            if flat.dtype.kind == "f":
                if not np.all(np.isfinite(flat)):
                    raise InvalidParameterError("Sample values must be finite")
                if np.any(flat != np.floor(flat)):
                    raise InvalidParameterError("Sample values must be whole numbers")
            elif flat.dtype.kind not in "iu":
                raise InvalidParameterError(
                    f"Sample values must be integers, got {flat.dtype}"
                )
            if flat.size and (flat.min() < 0 or flat.max() > 255):
                raise InvalidParameterError("Sample values must be within [0, 255]")
            flat = flat.astype(np.uint8)
        return cls(flat.reshape(height, width, CHANNELS).copy())

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Wrap an (H, W, 4) or (H, W, 3) uint8 array. RGB gets opaque alpha."""
        if array.ndim == 3 and array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array.astype(np.uint8), alpha], axis=2)
        return cls(np.ascontiguousarray(array))


def check_pixels(pixels: np.ndarray):
    """Raise DimensionMismatchError unless pixels is a valid (H, W, 4) uint8 raster."""
    if not isinstance(pixels, np.ndarray):
        raise DimensionMismatchError(
            f"Pixel data is {type(pixels).__name__}, expected ndarray"
        )
    if pixels.ndim != 3 or pixels.shape[2] != CHANNELS:
        raise DimensionMismatchError(
            f"Pixel data has shape {pixels.shape}, expected (H, W, {CHANNELS})"
        )
    if pixels.shape[0] <= 0 or pixels.shape[1] <= 0:
        raise DimensionMismatchError(f"Pixel data is empty: {pixels.shape}")
    if pixels.dtype != np.uint8:
        raise DimensionMismatchError(f"Pixel data is {pixels.dtype}, expected uint8")
