"""
backend/fairline/mappers/sgo.py

Purpose:
    SportsGameOdds events -> canonical records. The feed has shipped two
    envelopes over time (``events`` and ``data``); both carry the same event
    objects with nested ``moneyline``/``spread``/``total`` blocks. Older events
    use an ``ml`` block instead of ``moneyline``.
"""

from __future__ import annotations

from typing import Any

from fairline.mappers.base import BARE_LIST, build_record, classify, first_of, list_under, map_items, path, safe_mapper
from fairline.models.odds import OddsRecord

PROVIDER = "sportsgameodds"

SHAPES = (list_under("events"), list_under("data"), BARE_LIST)

EVENT_ID = (path("id"), path("eventId"), path("eventID"))
HOME_TEAM = (path("homeTeam", "name"), path("teams", "home", "name"), path("home_team"), path("homeTeam"), path("home"))
AWAY_TEAM = (path("awayTeam", "name"), path("teams", "away", "name"), path("away_team"), path("awayTeam"), path("away"))
STARTS_AT = (path("startTime"), path("start_time"), path("start"), path("status", "startsAt"))
BOOKMAKER = (path("bookmaker"), path("book"))
UPDATED_AT = (path("updatedAt"), path("lastUpdated"))

ML_HOME = (path("moneyline", "home"), path("ml", "home"))
ML_AWAY = (path("moneyline", "away"), path("ml", "away"))


def _build(item: dict[str, Any], *, sport: str, league: str | None) -> list[OddsRecord]:
    return [
        build_record(
            PROVIDER,
            sport=sport,
            league=league,
            event_id=first_of(item, EVENT_ID),
            home_team=first_of(item, HOME_TEAM),
            away_team=first_of(item, AWAY_TEAM),
            starts_at=first_of(item, STARTS_AT),
            bookmaker=first_of(item, BOOKMAKER) or "SportsGameOdds",
            moneyline={"home": first_of(item, ML_HOME), "away": first_of(item, ML_AWAY)},
            spread={
                "home": path("spread", "home")(item),
                "away": path("spread", "away")(item),
                "point": path("spread", "point")(item),
            },
            total={
                "points": path("total", "points")(item),
                "over": path("total", "over")(item),
                "under": path("total", "under")(item),
            },
            last_updated=first_of(item, UPDATED_AT),
        )
    ]


@safe_mapper(PROVIDER)
def map_sgo_odds(raw: Any, *, sport: str, league: str | None = None) -> list[OddsRecord]:
    _, items = classify(PROVIDER, raw, SHAPES)
    return map_items(PROVIDER, items, lambda item: _build(item, sport=sport, league=league))
