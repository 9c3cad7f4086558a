"""Clamping of user-supplied numeric limits."""

import math
from typing import Any


def normalize_positive_int(value: Any, default: int, maximum: int) -> int:
    """Floor ``value`` and clamp it to ``1..maximum``.

    Non-numeric input (including NaN and booleans) yields ``default``.
    Numeric strings are accepted.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if not isinstance(value, (int, float)) or math.isnan(value):
        return default
    if math.isinf(value):
        return maximum if value > 0 else 1
    return max(1, min(maximum, math.floor(value)))
