"""Channel multiply — scale luminosity by a per-channel multiplier."""

import numpy as np

from effects.util.luminosity import average_luminosity, to_bytes

EFFECT_ID = "fx.channel_multiply"
EFFECT_NAME = "Channel Multiply"
EFFECT_CATEGORY = "duotone"

# Cool-toned default
DEFAULT_MULTIPLIERS = (0.5, 0.2, 1.2)

SLIDER_MIN = 0.0
SLIDER_MAX = 3.0
SLIDER_STEP = 0.1


def _multiplier_param(label: str, default: float) -> dict:
    return {
        "type": "float",
        "min": SLIDER_MIN,
        "max": SLIDER_MAX,
        "step": SLIDER_STEP,
        "default": default,
        "label": label,
        "curve": "linear",
        "unit": "x",
    }


PARAMS: dict = {
    "red": _multiplier_param("Red Multiplier", DEFAULT_MULTIPLIERS[0]),
    "green": _multiplier_param("Green Multiplier", DEFAULT_MULTIPLIERS[1]),
    "blue": _multiplier_param("Blue Multiplier", DEFAULT_MULTIPLIERS[2]),
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
    """out_c = clamp(avg * multiplier_c). Stateless."""
    multipliers = np.array(
        [
            float(params.get(name, default))
            for name, default in zip(("red", "green", "blue"), DEFAULT_MULTIPLIERS)
        ]
    )

    mapped = average_luminosity(frame) * multipliers

    output = frame.copy()
    output[:, :, :3] = to_bytes(mapped)
    return output, None
