"""
backend/fairline/services/odds_aggregator.py

Purpose:
    Read side of the pipeline. Loads cached provider payloads for a
    sport/league, maps them to canonical records, groups by event id and
    attaches the fair price per event.

    When no priced provider has data, cached fixture-only payloads are
    scanned instead so callers get degraded-but-non-empty output.

    Output order is unspecified; callers that present events sort them
    explicitly (e.g. by ``starts_at``).

Dependencies:
    - fairline.store
    - fairline.mappers
    - fairline.services.fair_odds_engine
    - fairline.services.event_join
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any

from fairline.cache_keys import raw_payload_key, raw_payload_pattern
from fairline.config import Settings, settings as default_settings
from fairline.mappers import get_mapper
from fairline.models.consensus import UnifiedEvent
from fairline.models.odds import OddsRecord
from fairline.providers.registry import ProviderConfig, ProviderRegistry
from fairline.services.event_join import merge_fuzzy_groups
from fairline.services.fair_odds_engine import compute_consensus_for_event
from fairline.store import CacheStore

logger = logging.getLogger("fairline.aggregator")


def group_by_event(records: list[OddsRecord]) -> dict[str, list[OddsRecord]]:
    """Group records by event id; records without one cannot be joined and are dropped."""
    grouped: dict[str, list[OddsRecord]] = {}
    for record in records:
        if not record.event_id:
            continue
        grouped.setdefault(record.event_id, []).append(record)
    return grouped


def _first(records: list[OddsRecord], attr: str) -> Any:
    for record in records:
        value = getattr(record, attr)
        if value is not None:
            return value
    return None


class OddsAggregator:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: CacheStore,
        *,
        config: Settings | None = None,
    ):
        cfg = config or default_settings
        self._registry = registry
        self._store = store
        self.fuzzy_join = bool(cfg.FUZZY_EVENT_JOIN)
        self.kickoff_window = timedelta(minutes=cfg.FUZZY_KICKOFF_WINDOW_MINUTES)

    async def get_unified_odds_with_fair(self, *, sport: str, league: str | None = None) -> list[UnifiedEvent]:
        priced = await self._load_priced(sport, league)
        fallback: list[OddsRecord] = []
        if not priced:
            fallback = await self._load_fixture_fallback(sport, league)

        records = priced + fallback
        groups = group_by_event(records)
        if self.fuzzy_join:
            groups = merge_fuzzy_groups(groups, self.kickoff_window)

        logger.info(
            "Aggregated %s/%s: %d priced, %d fallback records -> %d events",
            sport, league or "*", len(priced), len(fallback), len(groups),
        )

        results = []
        for event_id, group in groups.items():
            results.append(
                UnifiedEvent(
                    event_id=event_id,
                    sport=sport,
                    league=league or group[0].league,
                    home_team=_first(group, "home_team"),
                    away_team=_first(group, "away_team"),
                    starts_at=_first(group, "starts_at"),
                    providers=group,
                    fair=compute_consensus_for_event(group),
                )
            )
        return results

    async def _read_payload(self, key: str) -> dict[str, Any] | None:
        """Cached envelope for ``key``; foreign or corrupt values are logged and skipped."""
        raw = await self._store.get(key)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Corrupt cached payload at %s", key)
            return None
        if isinstance(payload, dict) and "data" in payload:
            return payload
        # Written by a collaborator without our envelope.
        return {"data": payload}

    async def _load_priced(self, sport: str, league: str | None) -> list[OddsRecord]:
        records: list[OddsRecord] = []
        for provider in self._registry.priced():
            try:
                records.extend(await self._load_provider(provider, sport, league))
            except Exception:
                logger.exception("Reading cached %s payloads failed", provider.id)
        return records

    async def _load_provider(self, provider: ProviderConfig, sport: str, league: str | None) -> list[OddsRecord]:
        mapper = get_mapper(provider.mapper_name)
        if mapper is None:
            return []
        records: list[OddsRecord] = []
        for endpoint in provider.sample_endpoints:
            if not endpoint.serves(sport, league):
                continue
            envelope = await self._read_payload(raw_payload_key(provider.id, endpoint.key))
            if envelope is None:
                continue
            records.extend(mapper(envelope["data"], sport=sport, league=league or endpoint.league))
        return records

    async def _load_fixture_fallback(self, sport: str, league: str | None) -> list[OddsRecord]:
        records: list[OddsRecord] = []
        for provider in self._registry.fixture_only():
            mapper = get_mapper(provider.mapper_name)
            if mapper is None:
                continue
            try:
                keys = await self._store.keys(raw_payload_pattern(provider.id))
                for key in sorted(keys):
                    envelope = await self._read_payload(key)
                    if envelope is None:
                        continue
                    cached_sport = envelope.get("sport")
                    cached_league = envelope.get("league")
                    if cached_sport and cached_sport != sport:
                        continue
                    if league and cached_league and cached_league != league:
                        continue
                    records.extend(mapper(envelope["data"], sport=sport, league=league or cached_league))
            except Exception:
                logger.exception("Fixture fallback for %s failed", provider.id)
        return records
