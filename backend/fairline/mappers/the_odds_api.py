"""
backend/fairline/mappers/the_odds_api.py

Purpose:
    TheOddsAPI v4 ``/sports/{sport}/odds`` events -> canonical records, one
    record per bookmaker per event. Endpoints must request
    ``oddsFormat=american``; outcome prices are taken as American odds.

    Events without any bookmaker still yield one fixture-only record so the
    schedule contributes downstream.
"""

from __future__ import annotations

from typing import Any

from fairline.mappers.base import BARE_LIST, build_record, classify, list_under, map_items, safe_mapper
from fairline.models.odds import OddsRecord

PROVIDER = "theoddsapi"

SHAPES = (BARE_LIST, list_under("data"))


def _markets(bookmaker: dict[str, Any], home_team: str | None, away_team: str | None) -> dict[str, dict[str, Any]]:
    moneyline: dict[str, Any] = {}
    spread: dict[str, Any] = {}
    total: dict[str, Any] = {}

    for market in bookmaker.get("markets") or []:
        if not isinstance(market, dict):
            continue
        key = market.get("key")
        for outcome in market.get("outcomes") or []:
            if not isinstance(outcome, dict):
                continue
            name = outcome.get("name")
            price = outcome.get("price")
            if key == "h2h":
                if name == home_team:
                    moneyline["home"] = price
                elif name == away_team:
                    moneyline["away"] = price
            elif key == "spreads":
                if name == home_team:
                    spread["home"] = price
                    spread["point"] = outcome.get("point")
                elif name == away_team:
                    spread["away"] = price
            elif key == "totals":
                if name == "Over":
                    total["over"] = price
                    total["points"] = outcome.get("point")
                elif name == "Under":
                    total["under"] = price
                    total.setdefault("points", outcome.get("point"))

    return {"moneyline": moneyline, "spread": spread, "total": total}


def _build(item: dict[str, Any], *, sport: str, league: str | None) -> list[OddsRecord]:
    home_team = item.get("home_team")
    away_team = item.get("away_team")
    common = {
        "sport": sport,
        "league": league or item.get("sport_key"),
        "event_id": item.get("id"),
        "home_team": home_team,
        "away_team": away_team,
        "starts_at": item.get("commence_time"),
    }

    bookmakers = [b for b in item.get("bookmakers") or [] if isinstance(b, dict)]
    if not bookmakers:
        return [build_record(PROVIDER, bookmaker=None, **common)]

    return [
        build_record(
            PROVIDER,
            bookmaker=bookmaker.get("title") or bookmaker.get("key"),
            last_updated=bookmaker.get("last_update"),
            **common,
            **_markets(bookmaker, home_team, away_team),
        )
        for bookmaker in bookmakers
    ]


@safe_mapper(PROVIDER)
def map_the_odds_api_odds(raw: Any, *, sport: str, league: str | None = None) -> list[OddsRecord]:
    _, items = classify(PROVIDER, raw, SHAPES)
    return map_items(PROVIDER, items, lambda item: _build(item, sport=sport, league=league))
