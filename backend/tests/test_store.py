"""
backend/tests/test_store.py

Purpose:
    MemoryStore semantics the scheduler and aggregator rely on: TTL expiry,
    atomic counters and glob key scans.
"""

from __future__ import annotations

import pytest

from fairline.cache_keys import UPDATES_CHANNEL, raw_payload_key, raw_payload_pattern
from fairline.store import MemoryStore, build_store


@pytest.mark.asyncio
async def test_get_after_ttl_is_miss(store, clock):
    await store.set("raw:a:x", "{}", ttl_seconds=10)
    clock.advance(9.9)
    assert await store.get("raw:a:x") == "{}"
    clock.advance(0.1)
    assert await store.get("raw:a:x") is None


@pytest.mark.asyncio
async def test_set_without_ttl_persists(store, clock):
    await store.set("provider:health:a", "{}")
    clock.advance(10**7)
    assert await store.get("provider:health:a") == "{}"


@pytest.mark.asyncio
async def test_incr_counts_and_expires(store, clock):
    assert await store.incr("c", ttl_seconds=60) == 1
    assert await store.incr("c", ttl_seconds=60) == 2
    clock.advance(61)
    assert await store.incr("c", ttl_seconds=60) == 1


@pytest.mark.asyncio
async def test_keys_glob_and_delete(store, clock):
    await store.set(raw_payload_key("footballdata", "v4_PL"), "1", ttl_seconds=30)
    await store.set(raw_payload_key("footballdata", "v4_BL1"), "2", ttl_seconds=5)
    await store.set(raw_payload_key("openligadb", "bl1"), "3")

    assert sorted(await store.keys(raw_payload_pattern("footballdata"))) == [
        "raw:footballdata:v4_BL1",
        "raw:footballdata:v4_PL",
    ]

    clock.advance(6)
    assert await store.keys(raw_payload_pattern("footballdata")) == ["raw:footballdata:v4_PL"]

    await store.delete("raw:footballdata:v4_PL")
    await store.delete("missing")
    assert await store.keys(raw_payload_pattern("footballdata")) == []


@pytest.mark.asyncio
async def test_publish_is_kept_for_inspection(store):
    assert await store.publish(UPDATES_CHANNEL, '{"type": "isports"}') == 0
    assert store.published == [("prefetch:updates", '{"type": "isports"}')]


def test_build_store_without_url_is_in_process():
    assert isinstance(build_store(""), MemoryStore)
