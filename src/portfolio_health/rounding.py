"""Half-up rounding for stored and displayed metric values.

The built-in ``round`` rounds halves to even, which turns a 0.125 quality
ratio into 0.12 and a 2.5 day cycle time into 2. Metric values here round
halves away from zero instead.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float, digits: int = 0) -> float:
    """Round ``value`` to ``digits`` decimal places, halves away from zero.

    The value goes through its shortest ``repr`` first, so ``0.125`` rounds
    to ``0.13`` even though its binary form is not exact in general.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def round_half_up_int(value: float) -> int:
    """Round ``value`` to the nearest integer, halves away from zero."""
    return int(round_half_up(value))
