"""iSports odds feed -> canonical records (priced, American moneyline)."""

from __future__ import annotations

from typing import Any

from fairline.mappers.base import BARE_LIST, build_record, classify, first_of, list_under, map_items, path, safe_mapper
from fairline.models.odds import OddsRecord

PROVIDER = "isports"

SHAPES = (list_under("data"), BARE_LIST)

EVENT_ID = (path("matchId"), path("id"))
HOME_TEAM = (path("homeName"), path("homeTeam"), path("home"))
AWAY_TEAM = (path("awayName"), path("awayTeam"), path("away"))
STARTS_AT = (path("matchTime"), path("time"), path("startTime"))
BOOKMAKER = (path("companyName"), path("bookmaker"))
UPDATED_AT = (path("updatedAt"), path("changeTime"))


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
            bookmaker=first_of(item, BOOKMAKER) or "iSports",
            moneyline={"home": item.get("oddsHome"), "away": item.get("oddsAway")},
            spread={
                "home": item.get("spreadHome"),
                "away": item.get("spreadAway"),
                "point": item.get("handicap"),
            },
            total={"points": item.get("total"), "over": item.get("over"), "under": item.get("under")},
            last_updated=first_of(item, UPDATED_AT),
        )
    ]


@safe_mapper(PROVIDER)
def map_isports_odds(raw: Any, *, sport: str, league: str | None = None) -> list[OddsRecord]:
    _, items = classify(PROVIDER, raw, SHAPES)
    return map_items(PROVIDER, items, lambda item: _build(item, sport=sport, league=league))
