"""Green/red pixel balance as a secondary direction hint for screenshots."""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np

from signal_engine.types import ColorHint, DetectedPosition

MIN_COLOR_RATIO = 0.01
CONFIDENCE_NUDGE = 0.1

_DARK_SUM = 50
_BRIGHT_SUM = 700
_DOMINANCE = 1.3
_MIN_CHANNEL = 100

_EMPTY_HINT = ColorHint(
    green_ratio=0.0,
    red_ratio=0.0,
    has_green=False,
    has_red=False,
    dominant="none",
    direction="UNKNOWN",
)


def analyze_position_colors(pixels: Any, *, min_ratio: float = MIN_COLOR_RATIO) -> ColorHint:
    """Measure green-dominant vs red-dominant pixels.

    Accepts an ``H x W x 3|4`` array, an ``N x 3|4`` array, or a flat RGBA
    byte buffer. Near-black and near-white pixels are ignored. Unusable
    buffers yield an empty hint.
    """
    rgb = _as_rgb(pixels)
    if rgb is None or rgb.size == 0:
        return _EMPTY_HINT

    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]
    total = r + g + b
    considered = (total >= _DARK_SUM) & (total <= _BRIGHT_SUM)
    counted = int(considered.sum())
    if counted == 0:
        return _EMPTY_HINT

    green = considered & (g > r * _DOMINANCE) & (g > b * _DOMINANCE) & (g > _MIN_CHANNEL)
    red = considered & (r > g * _DOMINANCE) & (r > b * _DOMINANCE) & (r > _MIN_CHANNEL)
    green_ratio = float(green.sum()) / counted
    red_ratio = float(red.sum()) / counted
    has_green = green_ratio > min_ratio
    has_red = red_ratio > min_ratio

    if green_ratio > red_ratio and has_green:
        return ColorHint(green_ratio, red_ratio, has_green, has_red, "green", "LONG")
    if red_ratio > green_ratio and has_red:
        return ColorHint(green_ratio, red_ratio, has_green, has_red, "red", "SHORT")
    return ColorHint(green_ratio, red_ratio, has_green, has_red, "none", "UNKNOWN")


def apply_color_hint(
    confidence: float,
    positions: Sequence[DetectedPosition],
    hint: ColorHint,
) -> float:
    """Nudge extraction confidence by colour agreement.

    Directions of the positions are never changed.
    """
    if hint.direction == "UNKNOWN" or not positions:
        return confidence
    if all(position.direction == hint.direction for position in positions):
        adjusted = confidence + CONFIDENCE_NUDGE
    else:
        adjusted = confidence - CONFIDENCE_NUDGE
    return max(0.0, min(1.0, adjusted))


def _as_rgb(pixels: Any) -> np.ndarray | None:
    try:
        if isinstance(pixels, (bytes, bytearray, memoryview)):
            arr = np.frombuffer(pixels, dtype=np.uint8).reshape(-1, 4)
        else:
            arr = np.asarray(pixels)
            if arr.ndim == 1:
                arr = arr.reshape(-1, 4)
            elif arr.ndim == 3:
                arr = arr.reshape(-1, arr.shape[-1])
            elif arr.ndim != 2:
                return None
    except (TypeError, ValueError):
        return None
    if arr.shape[-1] not in (3, 4):
        return None
    return arr[:, :3].astype(np.int64)
