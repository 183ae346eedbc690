"""Tests for half-up rounding of metric values."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from portfolio_health.rounding import round_half_up, round_half_up_int


@pytest.mark.parametrize(
    "value, digits, expected",
    [
        (0.125, 2, 0.13),
        (0.375, 2, 0.38),
        (0.625, 2, 0.63),
        (0.875, 2, 0.88),
        (0.124, 2, 0.12),
        (2.455, 2, 2.46),
        (0.1235, 3, 0.124),
        (181.5, 0, 182.0),
    ],
)
def test_round_half_up(value, digits, expected):
    """Verify halves round away from zero at the requested precision."""
    assert round_half_up(value, digits) == expected


@pytest.mark.parametrize("value, expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (12.5, 13), (0, 0)])
def test_round_half_up_int(value, expected):
    """Verify integer rounding differs from the built-in banker's rounding on halves."""
    assert round_half_up_int(value) == expected
    assert isinstance(round_half_up_int(value), int)
