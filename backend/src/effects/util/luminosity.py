"""Luminosity proxy and byte quantization shared by the mapping effects."""

import numpy as np


def average_luminosity(frame: np.ndarray) -> np.ndarray:
    """Unweighted (R + G + B) / 3 per pixel, float64 (H, W, 1)."""
    rgb = frame[:, :, :3].astype(np.float64)
    return rgb.sum(axis=2, keepdims=True) / 3.0


def to_bytes(values: np.ndarray) -> np.ndarray:
    """Clamp to [0, 255] on both bounds, round half-to-even, cast to uint8."""
    return np.rint(np.clip(values, 0.0, 255.0)).astype(np.uint8)
