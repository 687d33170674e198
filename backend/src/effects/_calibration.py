"""Mapping parameter calibration — every param must visibly move the output.

Also checks that raising a multiplier never darkens its channel.

Run:  cd backend && python -m effects._calibration
"""

import sys
from pathlib import Path

import numpy as np

# Ensure src/ is on the path when running as module
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from effects.registry import get, list_all  # noqa: E402

VALID_CURVES = {"linear"}
LEVELS_PCT = (0, 25, 50, 75, 100)
KW = {"frame_index": 0, "seed": 0, "resolution": (64, 48)}


def _test_frame(w: int = 64, h: int = 48) -> np.ndarray:
    """Deterministic RGBA test frame with a full luminosity range."""
    rng = np.random.default_rng(7)
    frame = rng.integers(0, 256, (h, w, 4), dtype=np.uint8)
    frame[0, 0, :3] = 0
    frame[0, 1, :3] = 255
    return frame


def _mean_diff(a: np.ndarray, b: np.ndarray) -> float:
    """Mean absolute difference across RGB channels."""
    return float(
        np.mean(np.abs(a[:, :, :3].astype(np.float32) - b[:, :, :3].astype(np.float32)))
    )


def _defaults(schema: dict) -> dict:
    return {k: pd.get("default", 0) for k, pd in schema.items()}


def _value_at(pdef: dict, level_pct: int):
    pmin = pdef.get("min", 0)
    pmax = pdef.get("max", 1)
    value = pmin + (pmax - pmin) * level_pct / 100.0
    return int(round(value)) if pdef.get("type") == "int" else value


def calibrate_all() -> list[dict]:
    """Sweep each numeric param across its range against the default render.

    Returns dicts: {effect_id, param, level_pct, value, mean_pixel_diff}.
    """
    frame = _test_frame()
    results: list[dict] = []

    for effect_info in list_all():
        eid = effect_info["id"]
        schema = effect_info["params"]
        fn = get(eid)["fn"]
        base = _defaults(schema)
        ref_out, _ = fn(frame, dict(base), None, **KW)

        for param_key, pdef in schema.items():
            if pdef.get("type") not in ("float", "int"):
                continue
            for level_pct in LEVELS_PCT:
                value = _value_at(pdef, level_pct)
                out, _ = fn(frame, {**base, param_key: value}, None, **KW)
                results.append(
                    {
                        "effect_id": eid,
                        "param": param_key,
                        "level_pct": level_pct,
                        "value": value,
                        "mean_pixel_diff": round(_mean_diff(ref_out, out), 2),
                    }
                )

    return results


def check_monotonic(effect_id: str = "fx.channel_multiply") -> list[str]:
    """Raising one multiplier must never lower that channel for avg > 0."""
    errors: list[str] = []
    entry = get(effect_id)
    if entry is None:
        return [f"{effect_id}: not registered"]

    frame = _test_frame()
    lit = frame[:, :, :3].astype(np.int32).sum(axis=2) > 0
    base = _defaults(entry["params"])

    for channel, key in enumerate(entry["params"]):
        pdef = entry["params"][key]
        previous = None
        for level_pct in LEVELS_PCT:
            out, _ = entry["fn"](
                frame, {**base, key: _value_at(pdef, level_pct)}, None, **KW
            )
            current = out[:, :, channel]
            if previous is not None and np.any(current[lit] < previous[lit]):
                errors.append(f"{effect_id}.{key}: output decreased at {level_pct}%")
            previous = current
    return errors


def validate_curves() -> list[str]:
    """Check that every param with a 'curve' field uses a valid curve name."""
    errors: list[str] = []
    for effect_info in list_all():
        for param_key, pdef in effect_info["params"].items():
            curve = pdef.get("curve")
            if curve is not None and curve not in VALID_CURVES:
                errors.append(
                    f"{effect_info['id']}.{param_key}: invalid curve '{curve}'"
                )
    return errors


def dead_params(results: list[dict]) -> list[str]:
    """Params whose full sweep never changes a pixel."""
    moved: dict[tuple[str, str], float] = {}
    for r in results:
        key = (r["effect_id"], r["param"])
        moved[key] = max(moved.get(key, 0.0), r["mean_pixel_diff"])
    return [f"{eid}.{param}" for (eid, param), diff in moved.items() if diff == 0]


def print_report(results: list[dict]) -> None:
    print(f"{'Effect':<22} {'Param':<13} {'Level%':>6} {'Value':>8} {'PixDiff':>8}")
    print("-" * 62)
    current_effect = ""
    for r in results:
        eid = r["effect_id"] if r["effect_id"] != current_effect else ""
        current_effect = r["effect_id"]
        print(
            f"{eid:<22} {r['param']:<13} {r['level_pct']:>5}% "
            f"{r['value']:>8.2f} {r['mean_pixel_diff']:>8.2f}"
        )


if __name__ == "__main__":
    problems = validate_curves() + check_monotonic()
    results = calibrate_all()
    problems += [f"{p}: no visible change" for p in dead_params(results)]
    print_report(results)
    if problems:
        print("\nCALIBRATION ERRORS:")
        for p in problems:
            print(f"  {p}")
        sys.exit(1)
