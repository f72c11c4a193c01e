"""
backend/fairline/workers/prefetch_scheduler.py

Purpose:
    Periodic prefetch of every configured provider endpoint into the cache
    store. Runs one tick immediately, then every PREFETCH_INTERVAL_SECONDS.

    - Providers are fetched concurrently (bounded by FETCH_MAX_CONCURRENCY);
      endpoints of one provider run sequentially to respect per-host limits.
    - Each fetch carries its own timeout; a tick deadline defers endpoints
      that have not started when PREFETCH_MAX_TICK_SECONDS passes.
    - Ticks never overlap: an interval firing while a tick is in flight is
      skipped, not queued.
    - stop() removes the interval job only; an in-flight tick finishes so
      cache writes are never cut in half.
    - A failing endpoint is recorded in the HealthTracker and never aborts
      the tick.
    - Each provider announces its outcome on the prefetch:updates and
      prefetch:error channels once its endpoints are done.

Dependencies:
    - apscheduler (AsyncIOScheduler)
    - fairline.providers.fetch_client
    - fairline.workers.health_tracker
    - fairline.mappers
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from fairline.cache_keys import ERROR_CHANNEL, UPDATES_CHANNEL, normalized_key, raw_payload_key
from fairline.config import Settings, settings as default_settings
from fairline.errors import TickAlreadyRunningError
from fairline.mappers import get_mapper
from fairline.providers.fetch_client import FetchClient, FetchResult, parse_retry_after
from fairline.providers.registry import EndpointConfig, ProviderConfig, ProviderRegistry
from fairline.store import CacheStore
from fairline.workers.health_tracker import HealthTracker

logger = logging.getLogger("fairline.prefetch")

_JOB_ID = "prefetch_tick"


class PrefetchScheduler:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: CacheStore,
        client: FetchClient,
        *,
        config: Settings | None = None,
        health: HealthTracker | None = None,
        clock: Callable[[], float] = time.time,
        job_scheduler: AsyncIOScheduler | None = None,
    ):
        cfg = config or default_settings
        self._registry = registry
        self._store = store
        self._client = client
        self._clock = clock
        self.interval_seconds = max(1, int(cfg.PREFETCH_INTERVAL_SECONDS))
        self.max_tick_seconds = float(cfg.PREFETCH_MAX_TICK_SECONDS)
        self.fetch_timeout = float(cfg.FETCH_TIMEOUT_SECONDS)
        self.max_concurrency = max(1, int(cfg.FETCH_MAX_CONCURRENCY))
        self.raw_ttl_seconds = int(cfg.RAW_PAYLOAD_TTL_SECONDS)
        self.store_max = max(1, int(cfg.PREFETCH_STORE_MAX))
        self.health = health or HealthTracker(
            store,
            failure_threshold=cfg.PREFETCH_FAILURE_THRESHOLD,
            rate_limit_threshold=cfg.PREFETCH_RATE_LIMIT_THRESHOLD,
            base_backoff_seconds=cfg.base_backoff_seconds,
            max_backoff_seconds=cfg.PREFETCH_MAX_BACKOFF_SECONDS,
            counter_ttl_seconds=cfg.FAILURE_COUNTER_TTL_SECONDS,
            diagnostic_ttl_seconds=cfg.DIAGNOSTIC_TTL_SECONDS,
            clock=clock,
        )
        self._owns_scheduler = job_scheduler is None
        self._scheduler = job_scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._job = None
        self._running = False
        self._inflight: asyncio.Task | None = None
        self.last_run_at: float | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self._job is not None:
            return
        restored = await self.health.restore([p.id for p in self._registry])
        if restored:
            logger.info("Restored health state for %d endpoints", restored)
        if self._owns_scheduler and not self._scheduler.running:
            self._scheduler.start()
        self._job = self._scheduler.add_job(
            self._on_interval,
            "interval",
            seconds=self.interval_seconds,
            id=_JOB_ID,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Prefetch scheduler started (interval=%ds, providers=%d)",
            self.interval_seconds, len(self._registry.enabled()),
        )

    async def stop(self, wait: bool = False) -> None:
        if self._job is not None:
            self._job.remove()
            self._job = None
        # Our tick task is not owned by the APScheduler executor, so shutting the
        # scheduler down does not cancel it.
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        inflight = self._inflight
        if wait and inflight is not None and not inflight.done():
            await inflight
        logger.info("Prefetch scheduler stopped")

    async def _on_interval(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            logger.warning("Prefetch tick still running, skipping this interval")
            return
        self._inflight = asyncio.create_task(self._tick_safely(), name="prefetch-tick")

    async def _tick_safely(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Prefetch tick failed")

    async def run_tick_now(self) -> dict[str, Any]:
        """Manual trigger; refuses to overlap with an in-flight tick."""
        if self._running:
            raise TickAlreadyRunningError("Prefetch tick already running")
        return await self.tick()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    async def tick(self) -> dict[str, Any]:
        if self._running:
            logger.warning("Prefetch tick skipped: previous tick still running")
            return {"status": "skipped"}
        self._running = True
        started = self._clock()
        deadline = started + self.max_tick_seconds
        totals: Counter[str] = Counter()
        try:
            providers = self._registry.enabled()
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def _bounded(provider: ProviderConfig) -> Counter[str]:
                async with semaphore:
                    return await self._run_provider(provider, deadline)

            results = await asyncio.gather(*(_bounded(p) for p in providers), return_exceptions=True)
            for provider, result in zip(providers, results):
                if isinstance(result, BaseException):
                    totals["errors"] += 1
                    logger.error("Prefetch for %s aborted: %r", provider.id, result)
                else:
                    totals.update(result)
        finally:
            self._running = False

        self.last_run_at = self._clock()
        summary = {
            "status": "ok",
            "providers": len(providers),
            "attempted": totals["attempted"],
            "succeeded": totals["succeeded"],
            "failed": totals["failed"],
            "skipped": totals["skipped"],
            "deferred": totals["deferred"],
            "errors": totals["errors"],
            "duration_ms": int(max(0.0, self.last_run_at - started) * 1000),
        }
        level = logging.WARNING if summary["failed"] or summary["errors"] else logging.INFO
        logger.log(
            level,
            "Prefetch tick: %d attempted, %d ok, %d failed, %d in backoff, %d deferred",
            summary["attempted"], summary["succeeded"], summary["failed"],
            summary["skipped"], summary["deferred"],
        )
        return summary

    async def _run_provider(self, provider: ProviderConfig, deadline: float) -> Counter[str]:
        counts: Counter[str] = Counter()
        last_error: str | None = None
        endpoints = provider.sample_endpoints
        for index, endpoint in enumerate(endpoints):
            if self._clock() > deadline:
                counts["deferred"] += len(endpoints) - index
                logger.info("[%s] tick deadline reached, deferring %d endpoints", provider.id, len(endpoints) - index)
                break
            if not self.health.should_attempt(provider.id, endpoint.key):
                counts["skipped"] += 1
                continue
            counts["attempted"] += 1
            try:
                error = await self._run_endpoint(provider, endpoint)
            except Exception as exc:
                counts["errors"] += 1
                last_error = f"{type(exc).__name__}: {exc}"
                logger.exception("[%s] %s prefetch error", provider.id, endpoint.path)
                continue
            if error is None:
                counts["succeeded"] += 1
            else:
                counts["failed"] += 1
                last_error = error

        if counts["succeeded"]:
            await self._notify(UPDATES_CHANNEL, {"type": provider.id, "ts": self._clock()})
        if last_error is not None:
            await self._notify(ERROR_CHANNEL, {"type": provider.id, "error": last_error, "ts": self._clock()})
        return counts

    async def _run_endpoint(self, provider: ProviderConfig, endpoint: EndpointConfig) -> str | None:
        """Fetch and store one endpoint. Returns the failure reason, or None on success."""
        result = await self._fetch(provider, endpoint)
        status = result.http_status
        if result.error is None and status is not None and status < 400:
            # 304 and other bodiless answers leave the cached payload untouched.
            if result.body is not None:
                await self._store_payload(provider, endpoint, result)
            await self.health.record_success(provider.id, endpoint.key)
            return None

        retry_after = parse_retry_after(result.headers) if status in (429, 503) else None
        reason = result.error or f"http_{status}"
        await self.health.record_failure(
            provider.id,
            endpoint.key,
            status=status,
            reason=reason,
            retry_after=retry_after,
        )
        return reason

    async def _notify(self, channel: str, message: dict[str, Any]) -> None:
        try:
            await self._store.publish(channel, json.dumps(message))
        except Exception:
            logger.warning("Publish to %s failed", channel, exc_info=True)

    async def _fetch(self, provider: ProviderConfig, endpoint: EndpointConfig) -> FetchResult:
        try:
            return await asyncio.wait_for(
                self._client.fetch(
                    provider.host,
                    endpoint.path,
                    auth=provider.auth_spec(),
                    params=endpoint.params,
                    headers=provider.extra_headers,
                    scheme=provider.scheme,
                    timeout=self.fetch_timeout,
                    provider=provider.id,
                ),
                # The HTTP timeout should fire first; this guards DNS/TLS stalls.
                timeout=self.fetch_timeout + 1.0,
            )
        except asyncio.TimeoutError:
            logger.warning("[%s] %s timed out after %.0fs", provider.id, endpoint.path, self.fetch_timeout)
            return FetchResult(url=f"{provider.scheme}://{provider.host}{endpoint.path}", error="timeout")

    async def _store_payload(self, provider: ProviderConfig, endpoint: EndpointConfig, result: FetchResult) -> None:
        envelope = {
            "fetched_at": self._clock(),
            "provider_id": provider.id,
            "endpoint": endpoint.path,
            "endpoint_key": endpoint.key,
            "sport": endpoint.sport,
            "league": endpoint.league,
            "http_status": result.http_status,
            "data": result.body,
        }
        await self._store.set(
            raw_payload_key(provider.id, endpoint.key), json.dumps(envelope), self.raw_ttl_seconds,
        )

        mapper = get_mapper(provider.mapper_name)
        if mapper is None:
            logger.warning("[%s] no mapper named %r, raw payload only", provider.id, provider.mapper_name)
            return
        records = mapper(result.body, sport=endpoint.sport, league=endpoint.league)
        if len(records) > self.store_max:
            logger.info("[%s] %s: keeping %d of %d records", provider.id, endpoint.key, self.store_max, len(records))
            records = records[: self.store_max]
        await self._store.set(
            normalized_key(provider.id, endpoint.key),
            json.dumps([r.model_dump(mode="json") for r in records]),
            self.raw_ttl_seconds,
        )
        logger.debug("[%s] %s: %d records cached", provider.id, endpoint.key, len(records))
