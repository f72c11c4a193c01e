"""
backend/fairline/models/odds.py

Purpose:
    Canonical odds record every provider payload is mapped into. Records are
    immutable once created; prices are American odds.

Dependencies:
    - pydantic
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fairline.utils import parse_datetime


def to_float(value: Any) -> float | None:
    """Lenient numeric coercion: ints, floats and numeric strings; junk -> None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any) -> Any:
        return to_float(value)


class Moneyline(_FrozenModel):
    home: float | None = None
    away: float | None = None


class Spread(_FrozenModel):
    home: float | None = None
    away: float | None = None
    point: float | None = None


class Total(_FrozenModel):
    points: float | None = None
    over: float | None = None
    under: float | None = None


class Markets(BaseModel):
    model_config = ConfigDict(frozen=True)

    moneyline: Moneyline = Field(default_factory=Moneyline)
    spread: Spread = Field(default_factory=Spread)
    total: Total = Field(default_factory=Total)

    @property
    def has_prices(self) -> bool:
        return any(
            v is not None
            for v in (
                self.moneyline.home, self.moneyline.away,
                self.spread.home, self.spread.away,
                self.total.over, self.total.under,
            )
        )


class OddsRecord(BaseModel):
    """One provider's (and one bookmaker's) view of one event."""

    model_config = ConfigDict(frozen=True)

    provider: str
    sport: str
    league: str | None = None
    event_id: str | None = None
    home_team: str | None = None
    away_team: str | None = None
    starts_at: datetime | None = None
    bookmaker: str | None = None
    markets: Markets = Field(default_factory=Markets)
    last_updated: datetime | None = None

    @field_validator("event_id", mode="before")
    @classmethod
    def _stringify_event_id(cls, value: Any) -> str | None:
        # Numeric ids from one feed and string ids from another must compare equal.
        if value is None or value == "":
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value)

    @field_validator("starts_at", "last_updated", mode="before")
    @classmethod
    def _lenient_datetime(cls, value: Any) -> datetime | None:
        return parse_datetime(value)

    @field_validator("league", "home_team", "away_team", "bookmaker", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None
