"""
backend/fairline/services/fair_odds_engine.py

Purpose:
    Consensus and vig-free fair moneyline for one event, plus the best
    available offer per side across every provider/bookmaker record.

Dependencies:
    - fairline.services.odds_math
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from fairline.models.consensus import BestOffer, BestOffers, ConsensusResult
from fairline.models.odds import OddsRecord
from fairline.services.odds_math import (
    american_to_implied_prob,
    implied_prob_to_american,
    remove_vig,
)

logger = logging.getLogger("fairline.fair_odds_engine")


@dataclass(frozen=True)
class _Quote:
    record: OddsRecord
    home_odds: float | None
    away_odds: float | None
    p_home: float | None
    p_away: float | None

    @property
    def two_sided(self) -> bool:
        return self.p_home is not None and self.p_away is not None


def _quote(record: OddsRecord) -> _Quote:
    ml = record.markets.moneyline
    p_home = american_to_implied_prob(ml.home)
    p_away = american_to_implied_prob(ml.away)
    return _Quote(
        record=record,
        # A zero price has no implied probability and is not an offer either.
        home_odds=ml.home if p_home is not None else None,
        away_odds=ml.away if p_away is not None else None,
        p_home=p_home,
        p_away=p_away,
    )


def _best_offer(quotes: list[_Quote], side: str) -> BestOffer | None:
    best: _Quote | None = None
    best_odds: float | None = None
    for q in quotes:
        odds = q.home_odds if side == "home" else q.away_odds
        if odds is None:
            continue
        # Strict comparison keeps the first-seen record on ties.
        if best_odds is None or odds > best_odds:
            best, best_odds = q, odds
    if best is None or best_odds is None:
        return None
    return BestOffer(bookmaker=best.record.bookmaker, provider=best.record.provider, odds=best_odds)


def compute_consensus_for_event(records: Sequence[OddsRecord] | None) -> ConsensusResult | None:
    """Average implied probabilities across two-sided records and strip the vig.

    Returns None when no record quotes both moneyline sides. The average is
    unweighted: volume/liquidity signals are not comparable across feeds.
    """
    if not records:
        return None

    quotes = [_quote(r) for r in records]
    valid = [q for q in quotes if q.two_sided]
    if not valid:
        return None

    avg_home = sum(q.p_home for q in valid) / len(valid)  # type: ignore[misc]
    avg_away = sum(q.p_away for q in valid) / len(valid)  # type: ignore[misc]

    fair_home, fair_away = remove_vig(avg_home, avg_away)
    if fair_home is None:
        logger.debug("No fair price for %s: degenerate consensus", records[0].event_id)

    return ConsensusResult(
        event_id=records[0].event_id,
        consensus_home_prob=avg_home,
        consensus_away_prob=avg_away,
        fair_home_prob=fair_home,
        fair_away_prob=fair_away,
        fair_home_odds=implied_prob_to_american(fair_home),
        fair_away_odds=implied_prob_to_american(fair_away),
        best_offers=BestOffers(
            home=_best_offer(quotes, "home"),
            away=_best_offer(quotes, "away"),
        ),
        providers=list(records),
    )
