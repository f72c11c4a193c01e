"""
backend/fairline/workers/health_tracker.py

Purpose:
    Per provider/endpoint backoff state machine (HEALTHY -> DEGRADED ->
    BACKOFF) driven by the prefetch scheduler. Failure and rate-limit counters
    live in the cache store (atomic incr); the in-memory ProviderHealth objects
    are mirrored to ``provider:health:<provider_id>`` for the admin dashboard.

    backoff_seconds = min(max_backoff, base_backoff * 2 ** (failures - 1))

    A BACKOFF endpoint is skipped until ``backoff_until``; afterwards it is
    attempted once more (half-open). DEGRADED endpoints are attempted
    normally.

Dependencies:
    - fairline.store
    - fairline.cache_keys
"""

from __future__ import annotations

import json
import logging
import time
from typing import Callable

from fairline.cache_keys import (
    diagnostic_key,
    failure_counter_key,
    provider_health_key,
    rate_limit_counter_key,
)
from fairline.models.health import FailureDiagnostic, HealthStatus, ProviderHealth, worst_status
from fairline.store import CacheStore

logger = logging.getLogger("fairline.health")

# 2 ** 32 * any sane base already exceeds every max_backoff.
_MAX_EXPONENT = 32


def compute_backoff_seconds(failures: int, base_seconds: float, max_seconds: float) -> float:
    exponent = min(max(0, failures - 1), _MAX_EXPONENT)
    return min(max_seconds, base_seconds * (2 ** exponent))


class HealthTracker:
    def __init__(
        self,
        store: CacheStore,
        *,
        failure_threshold: int = 3,
        rate_limit_threshold: int = 2,
        base_backoff_seconds: float = 60,
        max_backoff_seconds: float = 3600,
        counter_ttl_seconds: int = 86400,
        diagnostic_ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self._store = store
        self._clock = clock
        self.failure_threshold = failure_threshold
        self.rate_limit_threshold = max(1, rate_limit_threshold)
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.counter_ttl_seconds = counter_ttl_seconds
        self.diagnostic_ttl_seconds = diagnostic_ttl_seconds
        self._states: dict[tuple[str, str], ProviderHealth] = {}

    def state(self, provider_id: str, endpoint: str) -> ProviderHealth:
        """Health for a pair, created HEALTHY on first access."""
        key = (provider_id, endpoint)
        health = self._states.get(key)
        if health is None:
            health = ProviderHealth(provider_id=provider_id, endpoint=endpoint)
            self._states[key] = health
        return health

    def states_for(self, provider_id: str) -> list[ProviderHealth]:
        return [h for (pid, _), h in self._states.items() if pid == provider_id]

    def should_attempt(self, provider_id: str, endpoint: str) -> bool:
        health = self.state(provider_id, endpoint)
        if health.in_backoff(self._clock()):
            return False
        if health.status == HealthStatus.BACKOFF:
            logger.info("[%s] %s backoff elapsed, allowing retry", provider_id, endpoint)
        return True

    async def record_success(self, provider_id: str, endpoint: str) -> ProviderHealth:
        health = self.state(provider_id, endpoint)
        was = health.status
        health.consecutive_failures = 0
        health.rate_limit_hits = 0
        health.backoff_until = None
        health.last_success_at = self._clock()
        health.status = HealthStatus.HEALTHY

        await self._store.delete(failure_counter_key(provider_id, endpoint))
        await self._store.delete(rate_limit_counter_key(provider_id, endpoint))
        await self._store.delete(diagnostic_key(provider_id, endpoint))
        if was != HealthStatus.HEALTHY:
            logger.info("[%s] %s recovered (%s -> HEALTHY)", provider_id, endpoint, was.value)
        await self.persist(provider_id)
        return health

    async def record_failure(
        self,
        provider_id: str,
        endpoint: str,
        *,
        status: int | None,
        reason: str,
        retry_after: float | None = None,
    ) -> ProviderHealth:
        health = self.state(provider_id, endpoint)
        now = self._clock()

        failures = await self._store.incr(
            failure_counter_key(provider_id, endpoint), ttl_seconds=self.counter_ttl_seconds,
        )
        health.consecutive_failures = failures
        if status == 429:
            health.rate_limit_hits = await self._store.incr(
                rate_limit_counter_key(provider_id, endpoint), ttl_seconds=self.counter_ttl_seconds,
            )

        backoff = compute_backoff_seconds(failures, self.base_backoff_seconds, self.max_backoff_seconds)
        if retry_after is not None:
            backoff = min(self.max_backoff_seconds, max(backoff, retry_after))
        health.backoff_until = now + backoff
        health.last_failure_at = now

        tripped = (
            failures >= self.failure_threshold
            or health.rate_limit_hits >= self.rate_limit_threshold
        )
        previous = health.status
        health.status = HealthStatus.BACKOFF if tripped else HealthStatus.DEGRADED
        if health.status == HealthStatus.BACKOFF and previous != HealthStatus.BACKOFF:
            logger.warning(
                "[%s] %s in BACKOFF after %d failures (%d rate-limited), next attempt in %.0fs",
                provider_id, endpoint, failures, health.rate_limit_hits, backoff,
            )

        diagnostic = FailureDiagnostic(status=status, reason=reason, timestamp=now)
        await self._store.set(
            diagnostic_key(provider_id, endpoint),
            json.dumps(diagnostic.to_dict()),
            self.diagnostic_ttl_seconds,
        )
        await self.persist(provider_id)
        return health

    def snapshot(self, provider_id: str) -> dict:
        states = self.states_for(provider_id)
        return {
            "provider_id": provider_id,
            "status": worst_status(states).value,
            "updated_at": self._clock(),
            "endpoints": {h.endpoint: h.to_dict() for h in states},
        }

    async def persist(self, provider_id: str) -> None:
        await self._store.set(provider_health_key(provider_id), json.dumps(self.snapshot(provider_id)))

    async def restore(self, provider_ids: list[str]) -> int:
        """Reload persisted snapshots so a restart does not forget active backoffs."""
        restored = 0
        for provider_id in provider_ids:
            raw = await self._store.get(provider_health_key(provider_id))
            if not raw:
                continue
            try:
                endpoints = json.loads(raw).get("endpoints") or {}
                for endpoint, data in endpoints.items():
                    self._states[(provider_id, endpoint)] = ProviderHealth(
                        provider_id=provider_id,
                        endpoint=endpoint,
                        consecutive_failures=int(data.get("consecutive_failures") or 0),
                        rate_limit_hits=int(data.get("rate_limit_hits") or 0),
                        last_success_at=data.get("last_success_at"),
                        last_failure_at=data.get("last_failure_at"),
                        backoff_until=data.get("backoff_until"),
                        status=HealthStatus(data.get("status") or HealthStatus.HEALTHY.value),
                    )
                    restored += 1
            except (ValueError, TypeError, AttributeError):
                logger.warning("Ignoring unreadable health snapshot for %s", provider_id, exc_info=True)
        return restored
