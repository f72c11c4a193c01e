"""
backend/fairline/services/odds_math.py

Purpose:
    Pure odds <-> implied probability conversions and vig removal. No I/O.
    Degenerate inputs return None instead of raising.
"""

from __future__ import annotations

import math
from typing import Any

from fairline.models.odds import to_float


def round_half_up(value: float) -> int:
    """Round .5 toward +infinity (-150.5 -> -150, 150.5 -> 151)."""
    return math.floor(value + 0.5)


def american_to_implied_prob(odds: Any) -> float | None:
    """Implied win probability of an American price, margin included."""
    o = to_float(odds)
    if o is None or o == 0:
        return None
    if o > 0:
        return 100.0 / (o + 100.0)
    return -o / (-o + 100.0)


def implied_prob_to_american(p: Any) -> int | None:
    """American price for a probability in (0, 1); even money is +100."""
    prob = to_float(p)
    if prob is None or prob <= 0 or prob >= 1:
        return None
    if prob > 0.5:
        return round_half_up(-prob / (1.0 - prob) * 100.0)
    return round_half_up((1.0 - prob) / prob * 100.0)


def remove_vig(p_home: Any, p_away: Any) -> tuple[float | None, float | None]:
    """Renormalize a two-way market so both sides sum to exactly 1."""
    home = to_float(p_home)
    away = to_float(p_away)
    if home is None or away is None or home < 0 or away < 0:
        return None, None
    total = home + away
    if total <= 0:
        return None, None
    return home / total, away / total


def decimal_to_american(decimal: Any) -> int | None:
    """Convert a decimal (European) price to American odds.

    2.0 and above are underdog prices (``+``), below 2.0 favorites (``-``).
    A decimal price of 1.0 or less has no American equivalent.
    """
    d = to_float(decimal)
    if d is None or d <= 1.0:
        return None
    if d >= 2.0:
        return round_half_up((d - 1.0) * 100.0)
    return round_half_up(-100.0 / (d - 1.0))


def american_to_decimal(odds: Any) -> float | None:
    o = to_float(odds)
    if o is None or o == 0:
        return None
    if o > 0:
        return 1.0 + o / 100.0
    return 1.0 + 100.0 / -o
