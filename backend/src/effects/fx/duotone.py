"""Duotone — map luminosity onto a shadow→highlight color gradient."""

import numpy as np

from effects.util.luminosity import average_luminosity, to_bytes

EFFECT_ID = "fx.duotone"
EFFECT_NAME = "Duotone"
EFFECT_CATEGORY = "duotone"

# Dark green shadow (#165027), pink highlight (#f99fd2)
DEFAULT_SHADOW = (22, 80, 39)
DEFAULT_HIGHLIGHT = (249, 159, 210)


def _channel_param(label: str, default: int) -> dict:
    return {
        "type": "int",
        "min": 0,
        "max": 255,
        "default": default,
        "label": label,
        "curve": "linear",
        "unit": "",
    }


PARAMS: dict = {
    "shadow_r": _channel_param("Shadow R", DEFAULT_SHADOW[0]),
    "shadow_g": _channel_param("Shadow G", DEFAULT_SHADOW[1]),
    "shadow_b": _channel_param("Shadow B", DEFAULT_SHADOW[2]),
    "highlight_r": _channel_param("Highlight R", DEFAULT_HIGHLIGHT[0]),
    "highlight_g": _channel_param("Highlight G", DEFAULT_HIGHLIGHT[1]),
    "highlight_b": _channel_param("Highlight B", DEFAULT_HIGHLIGHT[2]),
}


def apply(
    frame: np.ndarray,
    params: dict,
    state_in: dict | None = None,
    *,
    frame_index: int,
    seed: int,
    resolution: tuple[int, int],
) -> tuple[np.ndarray, dict | None]:
    """Linear interpolation from shadow to highlight by luminosity. Stateless.

    Channels where the shadow is brighter than the highlight invert that
    channel; the result is still clamped into [0, 255].
    """
    shadow = np.array(
        [float(params.get(f"shadow_{c}", d)) for c, d in zip("rgb", DEFAULT_SHADOW)]
    )
    highlight = np.array(
        [
            float(params.get(f"highlight_{c}", d))
            for c, d in zip("rgb", DEFAULT_HIGHLIGHT)
        ]
    )

    ratio = average_luminosity(frame) / 255.0
    mapped = shadow + (highlight - shadow) * ratio

    output = frame.copy()
    output[:, :, :3] = to_bytes(mapped)
    return output, None
