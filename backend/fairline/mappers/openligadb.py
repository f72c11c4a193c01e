"""OpenLigaDB matchdata -> canonical records (fixture-only)."""

from __future__ import annotations

from typing import Any

from fairline.mappers.base import BARE_LIST, build_record, classify, first_of, list_under, map_items, path, safe_mapper
from fairline.models.odds import OddsRecord

PROVIDER = "openligadb"

SHAPES = (BARE_LIST, list_under("recent"), list_under("matches"), list_under("data"))

EVENT_ID = (path("matchID"), path("matchId"), path("id"))
HOME_TEAM = (path("team1", "teamName"), path("team1", "shortName"), path("team1", "team"))
AWAY_TEAM = (path("team2", "teamName"), path("team2", "shortName"), path("team2", "team"))
# matchDateTime is local (Europe/Berlin) time; only used when the UTC field is absent.
STARTS_AT = (path("matchDateTimeUTC"), path("matchDateTime"), path("matchDateTimeLocal"))


def _build(item: dict[str, Any], *, sport: str, league: str | None) -> list[OddsRecord]:
    return [
        build_record(
            PROVIDER,
            sport=sport,
            league=league or path("leagueShortcut")(item),
            event_id=first_of(item, EVENT_ID),
            home_team=first_of(item, HOME_TEAM),
            away_team=first_of(item, AWAY_TEAM),
            starts_at=first_of(item, STARTS_AT),
            bookmaker="openligadb",
            last_updated=item.get("lastUpdateDateTime"),
        )
    ]


@safe_mapper(PROVIDER)
def map_openligadb_matches(raw: Any, *, sport: str = "football", league: str | None = None) -> list[OddsRecord]:
    _, items = classify(PROVIDER, raw, SHAPES)
    return map_items(PROVIDER, items, lambda item: _build(item, sport=sport, league=league))
