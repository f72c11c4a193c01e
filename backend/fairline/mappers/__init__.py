"""
backend/fairline/mappers/__init__.py

Purpose:
    Mapper registry: provider configuration names its mapper by key.

Dependencies:
    - fairline.mappers.*
"""

from __future__ import annotations

from fairline.mappers.base import Mapper
from fairline.mappers.football_data import map_football_data_fixtures
from fairline.mappers.isports import map_isports_odds
from fairline.mappers.openligadb import map_openligadb_matches
from fairline.mappers.sgo import map_sgo_odds
from fairline.mappers.the_odds_api import map_the_odds_api_odds

MAPPERS: dict[str, Mapper] = {
    "isports": map_isports_odds,
    "sportsgameodds": map_sgo_odds,
    "theoddsapi": map_the_odds_api_odds,
    "footballdata": map_football_data_fixtures,
    "openligadb": map_openligadb_matches,
}


def get_mapper(name: str | None) -> Mapper | None:
    if not name:
        return None
    return MAPPERS.get(name)


__all__ = [
    "MAPPERS",
    "get_mapper",
    "map_football_data_fixtures",
    "map_isports_odds",
    "map_openligadb_matches",
    "map_sgo_odds",
    "map_the_odds_api_odds",
]
