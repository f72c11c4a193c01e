"""
backend/fairline/models/consensus.py

Purpose:
    Read-time consensus output: fair price per event and the aggregator's
    per-event result entry. Never persisted.

Dependencies:
    - pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from fairline.models.odds import OddsRecord


class BestOffer(BaseModel):
    bookmaker: str | None = None
    provider: str
    odds: float


class BestOffers(BaseModel):
    home: BestOffer | None = None
    away: BestOffer | None = None


class ConsensusResult(BaseModel):
    event_id: str | None = None
    consensus_home_prob: float
    consensus_away_prob: float
    fair_home_prob: float | None = None
    fair_away_prob: float | None = None
    fair_home_odds: int | None = None
    fair_away_odds: int | None = None
    best_offers: BestOffers = Field(default_factory=BestOffers)
    providers: list[OddsRecord] = Field(default_factory=list)


class UnifiedEvent(BaseModel):
    """One grouped event as returned by the aggregator.

    ``fair`` is None when no provider quoted both moneyline sides; the raw
    ``providers`` are still carried so callers can show fixture data.
    """

    event_id: str
    sport: str
    league: str | None = None
    home_team: str | None = None
    away_team: str | None = None
    starts_at: datetime | None = None
    providers: list[OddsRecord] = Field(default_factory=list)
    fair: ConsensusResult | None = None
