"""Duotone pipeline — read → validate → decode → map → encode.

The pipeline boundary never raises for expected failures: every
DuotoneError becomes a FAILURE result carrying a user-facing message.
Unexpected exceptions are reported to Sentry and collapse into a generic
FAILURE so nothing escapes past the entry point.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

import sentry_sdk

from engine.mapper import map_duotone
from engine.mapping import DEFAULT_MAPPING, ColorMapping
from imaging.buffer import PixelBuffer
from imaging.decoder import decode_image, read_source
from imaging.encoder import ImageArtifact, encode_jpeg
from imaging.errors import DecodeError, DuotoneError, SizeLimitError
from security import MAX_UPLOAD_SIZE, validate_upload_bytes

logger = logging.getLogger(__name__)

GENERIC_ERROR = "An error occurred while processing the image."


class PipelineStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline invocation."""

    status: PipelineStatus
    artifact: ImageArtifact | None = None
    original: PixelBuffer | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == PipelineStatus.SUCCESS

    def to_dict(self) -> dict:
        """Serializable summary (no pixel or image payload)."""
        result = {"ok": self.ok, "status": self.status.value}
        if self.artifact is not None:
            result.update(
                {
                    "width": self.artifact.width,
                    "height": self.artifact.height,
                    "bytes": self.artifact.size,
                    "filename": self.artifact.filename,
                }
            )
        if self.error is not None:
            result["error"] = self.error
            result["error_type"] = self.error_type
        return result


def _capture_with_context(e: Exception, stage: str, extra: dict):
    """Capture exception to Sentry with stage context and fingerprint dedup."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("pipeline_stage", stage)
        scope.fingerprint = ["pipeline-crash", stage, type(e).__name__]
        scope.set_context("pipeline", extra)
        sentry_sdk.capture_exception(e, scope=scope)


def _failure(e: Exception, message: str | None = None) -> PipelineResult:
    return PipelineResult(
        status=PipelineStatus.FAILURE,
        error=message or str(e),
        error_type=type(e).__name__,
    )


def load_original(source, mime_type: str | None = None) -> PixelBuffer:
    """Read, validate and decode a source into the original PixelBuffer.

    Raises:
        DecodeError: Unreadable, empty, wrong MIME type or undecodable.
        SizeLimitError: Source exceeds MAX_UPLOAD_SIZE.
    """
    data = read_source(source)
    if len(data) > MAX_UPLOAD_SIZE:
        errors = validate_upload_bytes(data)
        raise SizeLimitError("; ".join(errors))
    errors = validate_upload_bytes(data, mime_type)
    if errors:
        raise DecodeError("; ".join(errors))
    return decode_image(data)


def _render(original: PixelBuffer, mapping: ColorMapping) -> ImageArtifact:
    t0 = time.monotonic()
    mapped = map_duotone(original, mapping)
    artifact = encode_jpeg(mapped)
    logger.info(
        "Rendered %dx%d %s in %.0fms (%d bytes)",
        artifact.width,
        artifact.height,
        mapping.effect_id,
        (time.monotonic() - t0) * 1000,
        artifact.size,
    )
    return artifact


def process_original(
    original: PixelBuffer, mapping: ColorMapping = DEFAULT_MAPPING
) -> PipelineResult:
    """Re-run map + encode from a retained original buffer."""
    try:
        artifact = _render(original, mapping)
    except DuotoneError as e:
        logger.warning("Transform failed: %s", type(e).__name__)
        logger.debug("Transform failure detail: %s", e)
        return _failure(e)
    except Exception as e:
        _capture_with_context(
            e,
            "transform",
            {"resolution": list(original.resolution), "effect_id": mapping.effect_id},
        )
        logger.error("Transform crashed: %s", type(e).__name__)
        return _failure(e, GENERIC_ERROR)

    return PipelineResult(
        status=PipelineStatus.SUCCESS, artifact=artifact, original=original
    )


def process_source(
    source, mapping: ColorMapping = DEFAULT_MAPPING, *, mime_type: str | None = None
) -> PipelineResult:
    """Full pipeline for a freshly uploaded source."""
    try:
        original = load_original(source, mime_type)
    except DuotoneError as e:
        logger.warning("Source rejected: %s", type(e).__name__)
        logger.debug("Source rejection detail: %s", e)
        return _failure(e)
    except Exception as e:
        _capture_with_context(e, "decode", {"source_type": type(source).__name__})
        logger.error("Decode crashed: %s", type(e).__name__)
        return _failure(e, GENERIC_ERROR)

    return process_original(original, mapping)
