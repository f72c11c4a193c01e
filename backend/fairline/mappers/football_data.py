"""
backend/fairline/mappers/football_data.py

Purpose:
    football-data.org fixtures -> canonical records. Fixture-only source: every
    record carries an empty moneyline, spread and total.

Known shapes:
    - ``{"matches": [...]}``: native v4 competition/matches response
    - ``{"data": [...]}``: prefetch envelope used by older cache writers
    - bare list of match objects
"""

from __future__ import annotations

from typing import Any

from fairline.mappers.base import BARE_LIST, build_record, classify, first_of, list_under, map_items, path, safe_mapper
from fairline.models.odds import OddsRecord

PROVIDER = "footballdata"
BOOKMAKER = "football-data"

SHAPES = (list_under("matches"), list_under("data"), BARE_LIST)

EVENT_ID = (path("id"), path("match_id"))
HOME_TEAM = (path("homeTeam", "name"), path("homeTeam", "shortName"), path("homeTeam", "tla"), path("home"))
AWAY_TEAM = (path("awayTeam", "name"), path("awayTeam", "shortName"), path("awayTeam", "tla"), path("away"))
STARTS_AT = (path("utcDate"), path("date"), path("kickoff"))


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
            bookmaker=BOOKMAKER,
            last_updated=item.get("lastUpdated"),
        )
    ]


@safe_mapper(PROVIDER)
def map_football_data_fixtures(raw: Any, *, sport: str = "football", league: str | None = None) -> list[OddsRecord]:
    _, items = classify(PROVIDER, raw, SHAPES)
    return map_items(PROVIDER, items, lambda item: _build(item, sport=sport, league=league))
