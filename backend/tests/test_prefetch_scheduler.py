"""
backend/tests/test_prefetch_scheduler.py

Purpose:
    Prefetch tick behavior with a fake fetch client and a manual clock:
    backoff skipping, recovery, rate limiting, tick reentrancy, the tick
    deadline, cache writes and the outcome notifications.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from fairline.cache_keys import (
    ERROR_CHANNEL,
    UPDATES_CHANNEL,
    normalized_key,
    provider_health_key,
    raw_payload_key,
)
from fairline.config import Settings
from fairline.errors import TickAlreadyRunningError
from fairline.models.health import HealthStatus
from fairline.providers.fetch_client import FetchResult
from fairline.providers.registry import ProviderRegistry
from fairline.workers.prefetch_scheduler import PrefetchScheduler


class FakeFetchClient:
    """Records calls; ``respond(host, endpoint)`` builds the result."""

    def __init__(self, respond=None):
        self.calls: list[tuple[str, str]] = []
        self.respond = respond or (lambda host, endpoint: FetchResult(url=endpoint, http_status=200, body=[]))
        self.active: dict[str, int] = {}
        self.max_active: dict[str, int] = {}

    async def fetch(self, host, endpoint, *, provider=None, **kwargs):
        self.calls.append((host, endpoint))
        self.active[host] = self.active.get(host, 0) + 1
        self.max_active[host] = max(self.max_active.get(host, 0), self.active[host])
        try:
            await asyncio.sleep(0)
            result = self.respond(host, endpoint)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        finally:
            self.active[host] -= 1


def _settings(**overrides) -> Settings:
    values = dict(
        PREFETCH_INTERVAL_SECONDS=60,
        PREFETCH_MAX_TICK_SECONDS=300,
        PREFETCH_BASE_BACKOFF_SECONDS=60,
        PREFETCH_MAX_BACKOFF_SECONDS=3600,
        PREFETCH_FAILURE_THRESHOLD=3,
        PREFETCH_RATE_LIMIT_THRESHOLD=2,
        FETCH_TIMEOUT_SECONDS=5.0,
        FETCH_MAX_CONCURRENCY=4,
        RAW_PAYLOAD_TTL_SECONDS=300,
    )
    values.update(overrides)
    return Settings(**values)


def _registry(*providers) -> ProviderRegistry:
    return ProviderRegistry.from_dicts(providers)


def _provider(pid: str, *paths: str, **extra) -> dict:
    return {
        "id": pid,
        "host": f"{pid}.example.com",
        "sample_endpoints": [{"path": p, "sport": "soccer", "league": "epl"} for p in paths],
        **extra,
    }


def _scheduler(registry, store, client, clock, **overrides) -> PrefetchScheduler:
    return PrefetchScheduler(registry, store, client, config=_settings(**overrides), clock=clock)


def _status(code: int, headers: dict | None = None):
    return lambda host, endpoint: FetchResult(url=endpoint, http_status=code, headers=headers or {})


@pytest.mark.asyncio
async def test_endpoint_skipped_after_failure_threshold(store, clock):
    client = FakeFetchClient(_status(500))
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    for _ in range(3):
        summary = await sched.tick()
        assert summary["attempted"] == 1
        assert summary["failed"] == 1
        clock.advance(60)

    assert len(client.calls) == 3
    summary = await sched.tick()

    assert len(client.calls) == 3
    assert summary["attempted"] == 0
    assert summary["skipped"] == 1
    assert sched.health.state("isports", "odds").status == HealthStatus.BACKOFF


@pytest.mark.asyncio
async def test_backoff_elapses_then_success_resets(store, clock):
    outcome = {"code": 500}
    client = FakeFetchClient(lambda host, endpoint: FetchResult(url=endpoint, http_status=outcome["code"], body=[]))
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock, PREFETCH_FAILURE_THRESHOLD=1)

    await sched.tick()
    assert sched.health.state("isports", "odds").status == HealthStatus.BACKOFF

    clock.advance(30)
    await sched.tick()
    assert len(client.calls) == 1

    clock.advance(30)
    outcome["code"] = 200
    summary = await sched.tick()

    assert summary["succeeded"] == 1
    health = sched.health.state("isports", "odds")
    assert health.status == HealthStatus.HEALTHY
    assert health.consecutive_failures == 0
    assert health.backoff_until is None


@pytest.mark.asyncio
async def test_degraded_endpoint_is_still_attempted(store, clock):
    client = FakeFetchClient(_status(502))
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    await sched.tick()
    assert sched.health.state("isports", "odds").status == HealthStatus.DEGRADED
    await sched.tick()

    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_rate_limited_endpoint_backs_off_with_retry_after(store, clock):
    client = FakeFetchClient(_status(429, {"retry-after": "900"}))
    sched = _scheduler(_registry(_provider("sportsgameodds", "/v2/events")), store, client, clock)

    await sched.tick()
    health = sched.health.state("sportsgameodds", "v2_events")
    assert health.status == HealthStatus.DEGRADED
    assert health.backoff_until == pytest.approx(clock.now + 900)

    await sched.tick()
    assert health.status == HealthStatus.BACKOFF
    assert health.rate_limit_hits == 2

    clock.advance(899)
    summary = await sched.tick()
    assert summary["skipped"] == 1
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_one_failing_provider_does_not_affect_others(store, clock):
    def respond(host, endpoint):
        if host.startswith("isports"):
            return FetchResult(url=endpoint, error="ConnectError: boom")
        return FetchResult(url=endpoint, http_status=200, body=[])

    client = FakeFetchClient(respond)
    registry = _registry(_provider("isports", "/a"), _provider("theoddsapi", "/b"))
    sched = _scheduler(registry, store, client, clock)

    summary = await sched.tick()

    assert summary["providers"] == 2
    assert summary["succeeded"] == 1
    assert summary["failed"] == 1
    diag = sched.health.state("isports", "a")
    assert diag.status == HealthStatus.DEGRADED
    assert await store.get(raw_payload_key("theoddsapi", "b")) is not None
    assert await store.get(raw_payload_key("isports", "a")) is None


@pytest.mark.asyncio
async def test_unexpected_client_exception_is_contained(store, clock):
    def respond(host, endpoint):
        if endpoint == "/boom":
            raise RuntimeError("unexpected")
        return FetchResult(url=endpoint, http_status=200, body=[])

    client = FakeFetchClient(respond)
    sched = _scheduler(_registry(_provider("isports", "/boom", "/ok")), store, client, clock)

    summary = await sched.tick()

    assert summary["errors"] == 1
    assert summary["succeeded"] == 1
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_endpoints_of_one_provider_run_sequentially(store, clock):
    async def slow(host, endpoint):
        await asyncio.sleep(0.01)
        return FetchResult(url=endpoint, http_status=200, body=[])

    client = FakeFetchClient(slow)
    registry = _registry(
        _provider("isports", "/a", "/b", "/c"),
        _provider("theoddsapi", "/d", "/e"),
    )
    sched = _scheduler(registry, store, client, clock)

    summary = await sched.tick()

    assert summary["succeeded"] == 5
    assert client.max_active["isports.example.com"] == 1
    assert client.max_active["theoddsapi.example.com"] == 1
    assert [c[1] for c in client.calls if c[0] == "isports.example.com"] == ["/a", "/b", "/c"]


@pytest.mark.asyncio
async def test_reentrant_tick_is_skipped(store, clock):
    release = asyncio.Event()

    async def blocked(host, endpoint):
        await release.wait()
        return FetchResult(url=endpoint, http_status=200, body=[])

    client = FakeFetchClient(blocked)
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    first = asyncio.create_task(sched.tick())
    while not client.calls:
        await asyncio.sleep(0)

    assert sched.running
    assert await sched.tick() == {"status": "skipped"}
    with pytest.raises(TickAlreadyRunningError):
        await sched.run_tick_now()

    release.set()
    summary = await first
    assert summary["succeeded"] == 1
    assert len(client.calls) == 1
    assert not sched.running
    assert sched.last_run_at == clock.now


@pytest.mark.asyncio
async def test_tick_deadline_defers_remaining_endpoints(store, clock):
    def respond(host, endpoint):
        clock.advance(200)
        return FetchResult(url=endpoint, http_status=200, body=[])

    client = FakeFetchClient(respond)
    sched = _scheduler(_registry(_provider("isports", "/a", "/b", "/c", "/d")), store, client, clock)

    summary = await sched.tick()

    # 0s: /a starts, 200s: /b starts, 400s: past the 300s deadline.
    assert summary["succeeded"] == 2
    assert summary["deferred"] == 2
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_fetch_timeout_counts_as_failure(store, clock):
    async def hang(host, endpoint):
        await asyncio.sleep(30)

    client = FakeFetchClient(hang)
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock, FETCH_TIMEOUT_SECONDS=0.01)

    summary = await sched.tick()

    assert summary["failed"] == 1
    diag = json.loads(await store.get("prefetch:diag:isports:odds"))
    assert diag["reason"] == "timeout"
    assert diag["status"] is None


@pytest.mark.asyncio
async def test_successful_fetch_writes_envelope_and_records(store, clock):
    body = {
        "matches": [
            {
                "id": 4401,
                "utcDate": "2026-02-14T15:00:00Z",
                "homeTeam": {"name": "Arsenal FC"},
                "awayTeam": {"name": "Chelsea FC"},
            }
        ]
    }
    client = FakeFetchClient(lambda host, endpoint: FetchResult(url=endpoint, http_status=200, body=body))
    registry = _registry(_provider("footballdata", "/v4/competitions/PL/matches", fixture_only=True))
    sched = _scheduler(registry, store, client, clock)

    await sched.tick()

    key = "v4_competitions_PL_matches"
    envelope = json.loads(await store.get(raw_payload_key("footballdata", key)))
    assert envelope["provider_id"] == "footballdata"
    assert envelope["endpoint"] == "/v4/competitions/PL/matches"
    assert envelope["sport"] == "soccer"
    assert envelope["league"] == "epl"
    assert envelope["http_status"] == 200
    assert envelope["fetched_at"] == clock.now
    assert envelope["data"] == body

    records = json.loads(await store.get(normalized_key("footballdata", key)))
    assert len(records) == 1
    assert records[0]["event_id"] == "4401"
    assert records[0]["markets"]["moneyline"] == {"home": None, "away": None}

    snapshot = json.loads(await store.get(provider_health_key("footballdata")))
    assert snapshot["status"] == "HEALTHY"

    clock.advance(301)
    assert await store.get(raw_payload_key("footballdata", key)) is None


@pytest.mark.asyncio
async def test_disabled_providers_are_not_fetched(store, clock):
    client = FakeFetchClient()
    registry = _registry(_provider("isports", "/a"), _provider("theoddsapi", "/b", enabled=False))
    sched = _scheduler(registry, store, client, clock)

    summary = await sched.tick()

    assert summary["providers"] == 1
    assert client.calls == [("isports.example.com", "/a")]


@pytest.mark.asyncio
async def test_start_runs_first_tick_and_stop_waits(store, clock):
    client = FakeFetchClient()
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    await sched.start()
    try:
        for _ in range(200):
            if sched.last_run_at is not None:
                break
            await asyncio.sleep(0.01)
    finally:
        await sched.stop(wait=True)

    assert sched.last_run_at is not None
    assert client.calls == [("isports.example.com", "/odds")]


@pytest.mark.asyncio
async def test_interval_firing_during_tick_is_skipped(store, clock):
    release = asyncio.Event()

    async def blocked(host, endpoint):
        await release.wait()
        return FetchResult(url=endpoint, http_status=200, body=[])

    client = FakeFetchClient(blocked)
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    await sched._on_interval()
    first = sched._inflight
    while not client.calls:
        await asyncio.sleep(0)

    await sched._on_interval()
    assert sched._inflight is first

    release.set()
    await first
    assert len(client.calls) == 1
    assert sched.last_run_at == clock.now


@pytest.mark.asyncio
async def test_not_modified_is_success_and_keeps_cached_payload(store, clock):
    outcome = {"code": 200, "body": [{"id": 1}]}
    client = FakeFetchClient(
        lambda host, endpoint: FetchResult(url=endpoint, http_status=outcome["code"], body=outcome["body"])
    )
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    await sched.tick()
    outcome.update(code=304, body=None)
    summary = await sched.tick()

    assert summary["succeeded"] == 1
    assert summary["failed"] == 0
    health = sched.health.state("isports", "odds")
    assert health.status == HealthStatus.HEALTHY
    assert health.consecutive_failures == 0
    envelope = json.loads(await store.get(raw_payload_key("isports", "odds")))
    assert envelope["http_status"] == 200
    assert envelope["data"] == [{"id": 1}]


@pytest.mark.asyncio
async def test_client_error_status_is_failure(store, clock):
    client = FakeFetchClient(_status(404))
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    summary = await sched.tick()

    assert summary["failed"] == 1
    diag = json.loads(await store.get("prefetch:diag:isports:odds"))
    assert diag["reason"] == "http_404"


@pytest.mark.asyncio
async def test_provider_outcomes_are_published(store, clock):
    def respond(host, endpoint):
        if host.startswith("isports"):
            return FetchResult(url=endpoint, http_status=503)
        return FetchResult(url=endpoint, http_status=200, body=[])

    client = FakeFetchClient(respond)
    registry = _registry(_provider("isports", "/a"), _provider("theoddsapi", "/b"))
    sched = _scheduler(registry, store, client, clock)

    await sched.tick()

    updates = [json.loads(m) for ch, m in store.published if ch == UPDATES_CHANNEL]
    errors = [json.loads(m) for ch, m in store.published if ch == ERROR_CHANNEL]
    assert updates == [{"type": "theoddsapi", "ts": clock.now}]
    assert errors == [{"type": "isports", "error": "http_503", "ts": clock.now}]


@pytest.mark.asyncio
async def test_publish_failure_does_not_break_tick(store, clock, monkeypatch):
    async def broken_publish(channel, message):
        raise ConnectionError("pubsub down")

    monkeypatch.setattr(store, "publish", broken_publish)
    client = FakeFetchClient()
    sched = _scheduler(_registry(_provider("isports", "/odds")), store, client, clock)

    summary = await sched.tick()

    assert summary["succeeded"] == 1
    assert await store.get(raw_payload_key("isports", "odds")) is not None


@pytest.mark.asyncio
async def test_stored_records_are_capped(store, clock):
    body = {
        "matches": [
            {
                "id": 5000 + i,
                "utcDate": "2026-02-14T15:00:00Z",
                "homeTeam": {"name": f"Home {i}"},
                "awayTeam": {"name": f"Away {i}"},
            }
            for i in range(5)
        ]
    }
    client = FakeFetchClient(lambda host, endpoint: FetchResult(url=endpoint, http_status=200, body=body))
    registry = _registry(_provider("footballdata", "/v4/matches", fixture_only=True))
    sched = _scheduler(registry, store, client, clock, PREFETCH_STORE_MAX=2)

    await sched.tick()

    records = json.loads(await store.get(normalized_key("footballdata", "v4_matches")))
    assert [r["event_id"] for r in records] == ["5000", "5001"]
    envelope = json.loads(await store.get(raw_payload_key("footballdata", "v4_matches")))
    assert len(envelope["data"]["matches"]) == 5
