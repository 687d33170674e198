"""Duotone mapper — runs a ColorMapping's effect over a PixelBuffer.

Pure: the same buffer and mapping always produce byte-identical output,
and the input buffer is never modified.
"""

import logging
import time

import numpy as np

from effects import registry
from engine.mapping import ColorMapping, validate_mapping
from imaging.buffer import PixelBuffer, check_pixels
from imaging.errors import DimensionMismatchError, InvalidParameterError

logger = logging.getLogger(__name__)

# Transform timing threshold (milliseconds)
MAP_WARN_MS = 250


def map_duotone(buffer: PixelBuffer, mapping: ColorMapping) -> PixelBuffer:
    """Apply a ColorMapping to every pixel. Alpha is preserved.

    Raises:
        InvalidParameterError: Mapping is malformed or out of range.
        DimensionMismatchError: Buffer (or effect output) violates the
            width * height * 4 invariant.
    """
    errors = validate_mapping(mapping)
    if errors:
        raise InvalidParameterError("; ".join(errors))

    frame = buffer.pixels
    check_pixels(frame)

    effect_info = registry.get(mapping.effect_id)
    if effect_info is None:
        raise InvalidParameterError(f"unknown effect: {mapping.effect_id}")

    t0 = time.monotonic()
    output, _ = effect_info["fn"](
        frame,
        mapping.to_params(),
        None,
        frame_index=0,
        seed=0,
        resolution=buffer.resolution,
    )
    elapsed_ms = (time.monotonic() - t0) * 1000

    if not isinstance(output, np.ndarray) or output.shape != frame.shape:
        shape = getattr(output, "shape", None)
        raise DimensionMismatchError(
            f"Effect {mapping.effect_id} returned shape {shape}, expected {frame.shape}"
        )
    if output.dtype != np.uint8:
        output = np.clip(output, 0, 255).astype(np.uint8)

    if elapsed_ms > MAP_WARN_MS:
        logger.warning(
            "Effect %s took %.0fms (>%dms warn threshold) at %dx%d",
            mapping.effect_id,
            elapsed_ms,
            MAP_WARN_MS,
            buffer.width,
            buffer.height,
        )
    else:
        logger.debug("Effect %s took %.1fms", mapping.effect_id, elapsed_ms)

    return PixelBuffer(output)


def map_samples(
    width: int, height: int, samples, mapping: ColorMapping
) -> PixelBuffer:
    """Map a flat RGBA sample sequence (length checked before any work)."""
    return map_duotone(PixelBuffer.from_samples(width, height, samples), mapping)
