"""
backend/fairline/providers/registry.py

Purpose:
    Provider configuration: host, auth method, key env var and the sample
    endpoints the scheduler prefetches. A ProviderRegistry is built once at
    startup (defaults or PROVIDERS_FILE) and injected into the scheduler and
    the aggregator; there is no module-level mutable registry.

Dependencies:
    - pydantic
    - fairline.providers.fetch_client (AuthSpec)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Literal
from urllib.parse import urlencode

from pydantic import BaseModel, Field, field_validator

from fairline.providers.fetch_client import AuthSpec
from fairline.utils import normalize_key_part

logger = logging.getLogger("fairline.providers")


class EndpointConfig(BaseModel):
    path: str
    sport: str = "soccer"
    league: str | None = None
    params: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Cache-key discriminator, stable across restarts."""
        if not self.params:
            return normalize_key_part(self.path)
        return normalize_key_part(f"{self.path}?{urlencode(sorted(self.params.items()))}")

    def serves(self, sport: str, league: str | None) -> bool:
        if self.sport != sport:
            return False
        return league is None or self.league is None or self.league == league


class ProviderConfig(BaseModel):
    id: str
    host: str
    auth_method: Literal["query", "header"] = "query"
    key_env_var: str | None = None
    query_param: str = "apiKey"
    header_name: str = "X-RapidAPI-Key"
    extra_headers: dict[str, str] = Field(default_factory=dict)
    scheme: str = "https"
    mapper: str | None = None
    fixture_only: bool = False
    enabled: bool = True
    sample_endpoints: list[EndpointConfig] = Field(default_factory=list)

    @field_validator("sample_endpoints", mode="before")
    @classmethod
    def _plain_paths(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"path": item} if isinstance(item, str) else item for item in value]

    @field_validator("host")
    @classmethod
    def _host_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("host must not be empty")
        return value

    @property
    def mapper_name(self) -> str:
        return self.mapper or self.id

    def api_key(self) -> str | None:
        if not self.key_env_var:
            return None
        return os.environ.get(self.key_env_var) or None

    def auth_spec(self) -> AuthSpec:
        return AuthSpec(
            method=self.auth_method,
            key=self.api_key(),
            query_param=self.query_param,
            header_name=self.header_name,
        )


_AMERICAN_ODDS_PARAMS = {"regions": "us", "markets": "h2h,spreads,totals", "oddsFormat": "american"}

DEFAULT_PROVIDERS: list[dict[str, Any]] = [
    {
        "id": "isports",
        "host": "api.isportsapi.com",
        "auth_method": "query",
        "key_env_var": "ISPORTS_API_KEY",
        "query_param": "api_key",
        "sample_endpoints": [
            {"path": "/sport/football/odds/main", "sport": "soccer"},
            {"path": "/sport/basketball/odds/main", "sport": "basketball"},
        ],
    },
    {
        "id": "sportsgameodds",
        "host": "api.sportsgameodds.com",
        "auth_method": "header",
        "key_env_var": "SPORTSGAMEODDS_API_KEY",
        "header_name": "X-Api-Key",
        "sample_endpoints": [
            {"path": "/v2/events", "params": {"leagueID": "NFL", "oddsAvailable": "true"},
             "sport": "americanfootball", "league": "nfl"},
            {"path": "/v2/events", "params": {"leagueID": "NBA", "oddsAvailable": "true"},
             "sport": "basketball", "league": "nba"},
            {"path": "/v2/events", "params": {"leagueID": "EPL", "oddsAvailable": "true"},
             "sport": "soccer", "league": "epl"},
        ],
    },
    {
        "id": "theoddsapi",
        "host": "api.the-odds-api.com",
        "auth_method": "query",
        "key_env_var": "THE_ODDS_API_KEY",
        "query_param": "apiKey",
        "sample_endpoints": [
            {"path": "/v4/sports/americanfootball_nfl/odds", "params": _AMERICAN_ODDS_PARAMS,
             "sport": "americanfootball", "league": "nfl"},
            {"path": "/v4/sports/basketball_nba/odds", "params": _AMERICAN_ODDS_PARAMS,
             "sport": "basketball", "league": "nba"},
            {"path": "/v4/sports/soccer_epl/odds", "params": {**_AMERICAN_ODDS_PARAMS, "markets": "h2h,totals"},
             "sport": "soccer", "league": "epl"},
        ],
    },
    {
        "id": "footballdata",
        "host": "api.football-data.org",
        "auth_method": "header",
        "key_env_var": "FOOTBALL_DATA_API_KEY",
        "header_name": "X-Auth-Token",
        "fixture_only": True,
        "sample_endpoints": [
            {"path": "/v4/competitions/PL/matches", "params": {"status": "SCHEDULED"},
             "sport": "soccer", "league": "epl"},
            {"path": "/v4/competitions/BL1/matches", "params": {"status": "SCHEDULED"},
             "sport": "soccer", "league": "bundesliga"},
        ],
    },
    {
        # Public API, no key.
        "id": "openligadb",
        "host": "api.openligadb.de",
        "auth_method": "header",
        "fixture_only": True,
        "sample_endpoints": [
            {"path": "/getmatchdata/bl1", "sport": "soccer", "league": "bundesliga"},
            {"path": "/getmatchdata/bl2", "sport": "soccer", "league": "bundesliga2"},
        ],
    },
]


class ProviderRegistry:
    """Immutable, explicitly constructed set of provider configurations."""

    def __init__(self, providers: Iterable[ProviderConfig]):
        self._providers: dict[str, ProviderConfig] = {}
        for provider in providers:
            if provider.id in self._providers:
                raise ValueError(f"Duplicate provider id: {provider.id}")
            self._providers[provider.id] = provider

    @classmethod
    def from_dicts(cls, raw: Iterable[dict[str, Any]]) -> "ProviderRegistry":
        return cls(ProviderConfig.model_validate(item) for item in raw)

    @classmethod
    def from_file(cls, path: str | Path) -> "ProviderRegistry":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = raw.get("providers", [])
        return cls.from_dicts(raw)

    @classmethod
    def from_settings(cls, settings: Any) -> "ProviderRegistry":
        providers_file = getattr(settings, "PROVIDERS_FILE", "")
        if providers_file:
            logger.info("Loading provider registry from %s", providers_file)
            return cls.from_file(providers_file)
        return cls.from_dicts(DEFAULT_PROVIDERS)

    def __iter__(self):
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def get(self, provider_id: str) -> ProviderConfig | None:
        return self._providers.get(provider_id)

    def enabled(self) -> list[ProviderConfig]:
        return [p for p in self._providers.values() if p.enabled]

    def priced(self) -> list[ProviderConfig]:
        return [p for p in self.enabled() if not p.fixture_only]

    def fixture_only(self) -> list[ProviderConfig]:
        return [p for p in self.enabled() if p.fixture_only]
