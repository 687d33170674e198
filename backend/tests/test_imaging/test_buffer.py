"""Tests for imaging.buffer — PixelBuffer invariants."""

import numpy as np
import pytest

from imaging.buffer import PixelBuffer, check_pixels
from imaging.errors import DimensionMismatchError, InvalidParameterError

pytestmark = pytest.mark.smoke


def test_from_samples_shape():
    samples = list(range(2 * 3 * 4))
    buf = PixelBuffer.from_samples(2, 3, samples)
    assert buf.width == 2
    assert buf.height == 3
    assert buf.pixels.shape == (3, 2, 4)
    assert len(buf.samples) == 2 * 3 * 4
    assert buf.pixel(1, 0) == (4, 5, 6, 7)


def test_from_samples_length_mismatch():
    with pytest.raises(DimensionMismatchError, match="expected 16"):
        PixelBuffer.from_samples(2, 2, [0] * 15)


def test_from_samples_rejects_non_positive_dimensions():
    with pytest.raises(InvalidParameterError):
        PixelBuffer.from_samples(0, 4, [])


def test_from_samples_rejects_out_of_range_values():
    with pytest.raises(InvalidParameterError, match=r"\[0, 255\]"):
        PixelBuffer.from_samples(1, 1, [0, 0, 256, 255])
    with pytest.raises(InvalidParameterError):
        PixelBuffer.from_samples(1, 1, [-1, 0, 0, 255])


@pytest.mark.parametrize(
    "samples, message",
    [
        ([90.7, 0, 0, 255], "whole numbers"),
        ([float("nan"), 0, 0, 255], "finite"),
        ([float("inf"), 0, 0, 255], "finite"),
        (["a", "b", "c", "d"], "integers"),
        ([True, False, True, True], "integers"),
    ],
)
def test_from_samples_rejects_non_integer_values(samples, message):
    with pytest.raises(InvalidParameterError, match=message):
        PixelBuffer.from_samples(1, 1, samples)


def test_from_samples_accepts_whole_floats():
    buf = PixelBuffer.from_samples(1, 1, [90.0, 0.0, 255.0, 255.0])
    assert buf.pixel(0, 0) == (90, 0, 255, 255)


def test_from_samples_copies_input():
    samples = np.zeros(4, dtype=np.uint8)
    buf = PixelBuffer.from_samples(1, 1, samples)
    samples[0] = 99
    assert buf.pixel(0, 0)[0] == 0


def test_from_array_rgb_gets_opaque_alpha():
    rgb = np.full((2, 3, 3), 7, dtype=np.uint8)
    buf = PixelBuffer.from_array(rgb)
    assert buf.pixels.shape == (2, 3, 4)
    assert np.all(buf.alpha == 255)


def test_constructor_rejects_bad_arrays():
    with pytest.raises(DimensionMismatchError):
        PixelBuffer(np.zeros((2, 2, 3), dtype=np.uint8))
    with pytest.raises(DimensionMismatchError):
        PixelBuffer(np.zeros((2, 2, 4), dtype=np.float32))
    with pytest.raises(DimensionMismatchError):
        PixelBuffer(np.zeros((0, 2, 4), dtype=np.uint8))


def test_check_pixels_rejects_non_array():
    with pytest.raises(DimensionMismatchError, match="expected ndarray"):
        check_pixels([[0, 0, 0, 0]])


def test_copy_is_independent(pixel_buffer):
    clone = pixel_buffer.copy()
    clone.pixels[0, 0, 0] ^= 0xFF
    assert clone.pixels[0, 0, 0] != pixel_buffer.pixels[0, 0, 0]
