"""Easing curves for state transitions.

Each curve maps transition progress in [0, 1] to an interpolation weight.
`ease()` clamps its input and pins the endpoints, so every curve satisfies
curve(0) == 0 and curve(1) == 1 exactly even where floating point would
drift. Elastic and bounce may leave [0, 1] in between.
"""

import math
import re
from typing import Callable, Dict

EasingFn = Callable[[float], float]


def linear(t: float) -> float:
    return t


def ease_in(t: float) -> float:
    return t * t


def ease_out(t: float) -> float:
    return t * (2 - t)


def ease_in_out(t: float) -> float:
    if t < 0.5:
        return 2 * t * t
    return -1 + (4 - 2 * t) * t


def exponential(t: float) -> float:
    if t == 0:
        return 0.0
    return math.pow(2, 10 * (t - 1))


def elastic(t: float) -> float:
    if t in (0, 1):
        return float(t)
    period = 0.3
    shift = period / 4
    return math.pow(2, -10 * t) * math.sin((t - shift) * (2 * math.pi) / period) + 1


def bounce(t: float) -> float:
    if t < 1 / 2.75:
        return 7.5625 * t * t
    if t < 2 / 2.75:
        t -= 1.5 / 2.75
        return 7.5625 * t * t + 0.75
    if t < 2.5 / 2.75:
        t -= 2.25 / 2.75
        return 7.5625 * t * t + 0.9375
    t -= 2.625 / 2.75
    return 7.5625 * t * t + 0.984375


CURVES: Dict[str, EasingFn] = {
    "linear": linear,
    "ease_in": ease_in,
    "ease_out": ease_out,
    "ease_in_out": ease_in_out,
    "exponential": exponential,
    "elastic": elastic,
    "bounce": bounce,
}

DEFAULT_CURVE = "ease_in_out"


def normalize_curve_name(name: str) -> str:
    """Accept `easeInOut`, `ease-in-out` and `ease_in_out` alike."""
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", name.strip()).replace("-", "_")
    return snake.lower()


def get_curve(name: str) -> EasingFn:
    """Look up a curve by name.

    Raises:
        ValueError: If the curve is unknown
    """
    key = normalize_curve_name(name)
    if key not in CURVES:
        raise ValueError(f"Unknown easing curve '{name}'. Known curves: {', '.join(sorted(CURVES))}")
    return CURVES[key]


def ease(name: str, t: float) -> float:
    """Apply the named curve to progress `t`, clamped to [0, 1]."""
    if t <= 0:
        return 0.0
    if t >= 1:
        return 1.0
    return get_curve(name)(t)
