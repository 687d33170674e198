"""Security validation gates for ChromaFlow."""

import json
import os
import re

# Upload validation
MAX_UPLOAD_SIZE = 25 * 1024 * 1024  # 25 MB
ALLOWED_MIME_PREFIX = "image/"

# Decoded surface cap (~100 megapixels); Pillow's bomb limit is aligned to it
MAX_PIXELS = 100_000_000


def is_image_mime(mime_type: str | None) -> bool:
    """True for image/* MIME types (the drag-and-drop filter)."""
    if not mime_type:
        return False
    return mime_type.strip().lower().startswith(ALLOWED_MIME_PREFIX)


def validate_upload_bytes(data: bytes, mime_type: str | None = None) -> list[str]:
    """Validate raw upload bytes. Returns list of errors (empty = valid).

    Checks:
    - Source is not empty
    - Size <= 25 MB
    - MIME type (when the caller knows it) is image/*
    """
    errors: list[str] = []

    if not data:
        errors.append("Source is empty")
        return errors

    size = len(data)
    if size > MAX_UPLOAD_SIZE:
        size_mb = size / (1024 * 1024)
        errors.append(
            f"File too large: {size_mb:.1f} MB (max {MAX_UPLOAD_SIZE // (1024 * 1024)} MB)"
        )

    if mime_type is not None and not is_image_mime(mime_type):
        errors.append(f"MIME type '{mime_type}' not allowed. Expected image/*")

    return errors


def validate_dimensions(width: int, height: int) -> list[str]:
    """Validate decoded dimensions against MAX_PIXELS. Returns list of errors."""
    errors: list[str] = []
    if width <= 0 or height <= 0:
        errors.append(f"Invalid dimensions {width}x{height}")
    elif width * height > MAX_PIXELS:
        errors.append(
            f"Image {width}x{height} exceeds maximum of {MAX_PIXELS} pixels"
        )
    return errors


# --- PII stripping for Sentry and crash dumps ---

_HOME = os.path.expanduser("~")
_USERNAME = os.path.basename(_HOME)
_PATH_PATTERN = re.compile(r"/Users/[^/\s]+|/home/[^/\s]+|C:\\Users\\[^\\\s]+")
_DATA_URL_PATTERN = re.compile(r"data:image/[a-z0-9.+-]+;base64,[A-Za-z0-9+/=]+")
_SENSITIVE_KEYS = {"token", "auth", "key", "secret", "password", "dsn"}


def _scrub_dict(d: dict):
    """Redact values for keys that look sensitive."""
    for key in list(d.keys()):
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            d[key] = "<REDACTED>"


def strip_pii(event: dict, hint: dict) -> dict:
    """Sentry before_send hook. Strips file paths, image payloads and secrets.

    Also usable for crash dump sanitization.
    """
    event_str = json.dumps(event)
    event_str = event_str.replace(_HOME, "<HOME>")
    if _USERNAME:
        event_str = event_str.replace(_USERNAME, "<USER>")
    event_str = _PATH_PATTERN.sub("<REDACTED_PATH>", event_str)
    # User photos must never leave the machine
    event_str = _DATA_URL_PATTERN.sub("<REDACTED_IMAGE>", event_str)
    event = json.loads(event_str)

    _scrub_dict(event.get("extra", {}))
    for ctx in event.get("contexts", {}).values():
        if isinstance(ctx, dict):
            _scrub_dict(ctx)
    return event
