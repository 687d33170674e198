"""Error taxonomy for the duotone pipeline."""


class DuotoneError(Exception):
    """Base class for every failure the pipeline converts into a notification."""


class DecodeError(DuotoneError):
    """Source is empty, unreadable, corrupt or not a supported image."""


class SizeLimitError(DuotoneError):
    """Source exceeds the upload size or decoded surface limits."""


class InvalidParameterError(DuotoneError, ValueError):
    """Mapping parameters are out of range or malformed."""


class DimensionMismatchError(DuotoneError, ValueError):
    """Sample buffer length does not match width * height * 4."""
