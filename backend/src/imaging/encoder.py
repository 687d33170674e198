"""JPEG encoding for the displayable/downloadable artifact."""

import base64
import io
from dataclasses import dataclass

import numpy as np
from PIL import Image

from imaging.buffer import PixelBuffer

JPEG_QUALITY = 90  # fixed; canvas toDataURL("image/jpeg", 0.9) equivalent
JPEG_MIME = "image/jpeg"
DOWNLOAD_FILENAME = "duotone-photo.jpeg"


@dataclass(frozen=True)
class ImageArtifact:
    """Encoded result owned by the presentation layer. Immutable."""

    data: bytes
    width: int
    height: int
    mime_type: str = JPEG_MIME
    quality: int = JPEG_QUALITY
    filename: str = DOWNLOAD_FILENAME

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def data_url(self) -> str:
        """Inline URL usable as an <img> src or download href."""
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"


def encode_jpeg(buffer: PixelBuffer, quality: int = JPEG_QUALITY) -> ImageArtifact:
    """Encode a PixelBuffer to a JPEG artifact. Drops alpha (JPEG is RGB only)."""
    img = Image.fromarray(np.ascontiguousarray(buffer.pixels[:, :, :3]))
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return ImageArtifact(
        data=buf.getvalue(),
        width=buffer.width,
        height=buffer.height,
        quality=quality,
    )


def decode_artifact(artifact: ImageArtifact) -> PixelBuffer:
    """Decode an artifact back to an RGBA PixelBuffer (opaque alpha)."""
    with Image.open(io.BytesIO(artifact.data)) as img:
        return PixelBuffer.from_array(np.array(img.convert("RGB")))
