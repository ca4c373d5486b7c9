"""
Numeric helpers shared by the matching and scoring modules.
"""

import math


def clamp(value: float, minimum: float, maximum: float) -> float:
    """Clamp value to the closed interval [minimum, maximum]."""
    return max(minimum, min(maximum, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves upwards (42.5 -> 43, not 42)."""
    return int(math.floor(value + 0.5))
