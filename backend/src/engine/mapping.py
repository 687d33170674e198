"""ColorMapping — the two parameterizations of the duotone transform.

Options arrive from the presentation layer in one of two recognized shapes:

    {"redMultiplier": 0.5, "greenMultiplier": 0.2, "blueMultiplier": 1.2}
    {"shadowColor": "#165027", "highlightColor": "#f99fd2"}

Colors may be ``#rrggbb`` strings or RGB triples.
"""

import math
import numbers
from dataclasses import dataclass, field

from effects.fx import channel_multiply, duotone
from imaging.errors import InvalidParameterError

MULTIPLIER_KEYS = ("redMultiplier", "greenMultiplier", "blueMultiplier")
ANCHOR_KEYS = ("shadowColor", "highlightColor")

RGB = tuple[int, int, int]


def hex_to_rgb(value: str) -> RGB:
    """Parse '#rrggbb' (or 'rrggbb') into an RGB triple."""
    text = value.strip().lstrip("#")
    if len(text) != 6:
        raise InvalidParameterError(f"Color '{value}' must be #rrggbb")
    try:
        return int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16)
    except ValueError as e:
        raise InvalidParameterError(f"Color '{value}' is not valid hex") from e


def rgb_to_hex(rgb: RGB) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def _coerce_color(name: str, value) -> RGB:
    if isinstance(value, str):
        return hex_to_rgb(value)
    try:
        channels = tuple(value)
    except TypeError as e:
        raise InvalidParameterError(f"{name} must be a hex string or RGB triple") from e
    if len(channels) != 3:
        raise InvalidParameterError(f"{name} must have exactly 3 channels")
    out = []
    for c in channels:
        if isinstance(c, bool) or not isinstance(c, numbers.Real):
            raise InvalidParameterError(f"{name} channel {c!r} is not a number")
        if not isinstance(c, numbers.Integral) and not float(c).is_integer():
            raise InvalidParameterError(f"{name} channel {c} is not an integer")
        if not 0 <= c <= 255:
            raise InvalidParameterError(f"{name} channel {c} outside [0, 255]")
        out.append(int(c))
    return out[0], out[1], out[2]


def _coerce_multiplier(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameterError(f"{name} must be a number, got {value!r}")
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise InvalidParameterError(f"{name} must be finite, got {value}")
    return value


@dataclass(frozen=True)
class MultiplierMapping:
    """Per-channel multipliers applied to the luminosity proxy.

    Negative finite values are accepted; the mapper clamps their output to 0.
    """

    red: float = channel_multiply.DEFAULT_MULTIPLIERS[0]
    green: float = channel_multiply.DEFAULT_MULTIPLIERS[1]
    blue: float = channel_multiply.DEFAULT_MULTIPLIERS[2]
    effect_id: str = field(default=channel_multiply.EFFECT_ID, init=False)

    def __post_init__(self):
        for key, value in zip(MULTIPLIER_KEYS, (self.red, self.green, self.blue)):
            _coerce_multiplier(key, value)

    def to_params(self) -> dict:
        return {"red": self.red, "green": self.green, "blue": self.blue}

    def to_options(self) -> dict:
        return dict(zip(MULTIPLIER_KEYS, (self.red, self.green, self.blue)))


@dataclass(frozen=True)
class AnchorMapping:
    """Shadow and highlight anchors, interpolated by luminosity."""

    shadow: RGB = duotone.DEFAULT_SHADOW
    highlight: RGB = duotone.DEFAULT_HIGHLIGHT
    effect_id: str = field(default=duotone.EFFECT_ID, init=False)

    def __post_init__(self):
        # Normalise lists / hex strings into validated int triples
        object.__setattr__(self, "shadow", _coerce_color("shadowColor", self.shadow))
        object.__setattr__(
            self, "highlight", _coerce_color("highlightColor", self.highlight)
        )

    def to_params(self) -> dict:
        params = {}
        for prefix, rgb in (("shadow", self.shadow), ("highlight", self.highlight)):
            for channel, value in zip("rgb", rgb):
                params[f"{prefix}_{channel}"] = value
        return params

    def to_options(self) -> dict:
        return {
            "shadowColor": rgb_to_hex(self.shadow),
            "highlightColor": rgb_to_hex(self.highlight),
        }


ColorMapping = MultiplierMapping | AnchorMapping

DEFAULT_MAPPING: ColorMapping = AnchorMapping()


def parse_mapping(options: dict | None) -> ColorMapping:
    """Build a ColorMapping from presentation-layer options.

    An empty/None dict yields DEFAULT_MAPPING. Missing multiplier keys fall
    back to their defaults.

    Raises:
        InvalidParameterError: Unknown keys, both option sets mixed, or
            out-of-range values.
    """
    if not options:
        return DEFAULT_MAPPING

    keys = set(options)
    unknown = keys - set(MULTIPLIER_KEYS) - set(ANCHOR_KEYS)
    if unknown:
        raise InvalidParameterError(f"Unrecognized mapping options: {sorted(unknown)}")

    has_multipliers = bool(keys & set(MULTIPLIER_KEYS))
    has_anchors = bool(keys & set(ANCHOR_KEYS))
    if has_multipliers and has_anchors:
        raise InvalidParameterError(
            "Use either multiplier options or anchor color options, not both"
        )

    if has_multipliers:
        defaults = channel_multiply.DEFAULT_MULTIPLIERS
        values = [
            _coerce_multiplier(key, options.get(key, default))
            for key, default in zip(MULTIPLIER_KEYS, defaults)
        ]
        return MultiplierMapping(*values)

    return AnchorMapping(
        shadow=options.get("shadowColor", duotone.DEFAULT_SHADOW),
        highlight=options.get("highlightColor", duotone.DEFAULT_HIGHLIGHT),
    )


def validate_mapping(mapping) -> list[str]:
    """Re-check a mapping object. Returns list of errors (empty = valid)."""
    errors: list[str] = []
    if isinstance(mapping, MultiplierMapping):
        for key, value in zip(
            MULTIPLIER_KEYS, (mapping.red, mapping.green, mapping.blue)
        ):
            try:
                _coerce_multiplier(key, value)
            except InvalidParameterError as e:
                errors.append(str(e))
    elif isinstance(mapping, AnchorMapping):
        for key, value in zip(ANCHOR_KEYS, (mapping.shadow, mapping.highlight)):
            try:
                _coerce_color(key, value)
            except InvalidParameterError as e:
                errors.append(str(e))
    else:
        errors.append(f"Unsupported mapping type: {type(mapping).__name__}")
    return errors
