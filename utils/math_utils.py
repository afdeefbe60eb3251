"""
Numeric helpers shared by the rating and ranking code.
"""

import math
from decimal import Decimal, ROUND_HALF_UP


class MathUtils:
    """Clamping and half-up rounding."""

    @staticmethod
    def clamp(value: float, minimum: float, maximum: float) -> float:
        return min(maximum, max(minimum, value))

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer, halves going up (2.5 -> 3)."""
        return int(math.floor(value + 0.5))

    @staticmethod
    def round_to(value: float, places: int = 2) -> float:
        """Round to a number of decimal places, halves going up."""
        quantum = Decimal(1).scaleb(-places)
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))

    @staticmethod
    def safe_ratio(value: float, maximum: float) -> float:
        """value / maximum, or 0 when the maximum is not positive."""
        return value / maximum if maximum > 0 else 0.0
