import io

import numpy as np
import pytest
from PIL import Image

from imaging.buffer import PixelBuffer

# Register conftest plugins
pytest_plugins = ["conftest_plugins.manifest"]


def encode_image(array: np.ndarray, fmt: str = "PNG", **save_kw) -> bytes:
    """Encode an (H, W, 3|4) uint8 array with Pillow."""
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format=fmt, **save_kw)
    return buf.getvalue()


@pytest.fixture
def rgba_frame():
    """Deterministic 48x64 RGBA frame with varied alpha."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (48, 64, 4), dtype=np.uint8)


@pytest.fixture
def pixel_buffer(rgba_frame):
    return PixelBuffer(rgba_frame)


@pytest.fixture
def png_bytes(rgba_frame):
    """Lossless RGBA PNG of rgba_frame."""
    return encode_image(rgba_frame, "PNG")


@pytest.fixture
def gray_jpeg_bytes():
    """32x24 mid-gray JPEG (smooth content survives compression)."""
    frame = np.full((24, 32, 3), 90, dtype=np.uint8)
    return encode_image(frame, "JPEG", quality=95)


@pytest.fixture
def gif_two_frames():
    """Two-frame GIF: first frame black, second white."""
    frames = [
        Image.new("RGB", (8, 6), (0, 0, 0)),
        Image.new("RGB", (8, 6), (255, 255, 255)),
    ]
    buf = io.BytesIO()
    frames[0].save(buf, format="GIF", save_all=True, append_images=frames[1:])
    return buf.getvalue()
