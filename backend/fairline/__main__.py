"""Prefetch scheduler and unified-odds dump.

Usage:
    python -m fairline run
    python -m fairline run --once
    python -m fairline dump --sport americanfootball --league nfl
    python -m fairline health
"""

import argparse
import asyncio
import json
import logging
import signal

from fairline.cache_keys import provider_health_key
from fairline.config import settings
from fairline.diagnostics import setup_logging
from fairline.providers.fetch_client import FetchClient
from fairline.providers.registry import ProviderRegistry
from fairline.services.odds_aggregator import OddsAggregator
from fairline.store import build_store
from fairline.workers.prefetch_scheduler import PrefetchScheduler

logger = logging.getLogger("fairline")


async def run(once: bool) -> None:
    registry = ProviderRegistry.from_settings(settings)
    store = build_store(settings.REDIS_URL)
    client = FetchClient(timeout=settings.FETCH_TIMEOUT_SECONDS)
    scheduler = PrefetchScheduler(registry, store, client, config=settings)
    try:
        if once:
            summary = await scheduler.run_tick_now()
            print(json.dumps(summary, indent=2))
            return

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:  # pragma: no cover - Windows
                pass
        await scheduler.start()
        await stop_event.wait()
        logger.info("Shutdown requested, waiting for in-flight tick")
        await scheduler.stop(wait=True)
    finally:
        await client.aclose()
        await store.aclose()


async def dump(sport: str, league: str | None) -> None:
    registry = ProviderRegistry.from_settings(settings)
    store = build_store(settings.REDIS_URL)
    try:
        aggregator = OddsAggregator(registry, store, config=settings)
        events = await aggregator.get_unified_odds_with_fair(sport=sport, league=league)
        events.sort(key=lambda e: (e.starts_at is None, e.starts_at))
        print(json.dumps([e.model_dump(mode="json") for e in events], indent=2))
    finally:
        await store.aclose()


async def health() -> None:
    registry = ProviderRegistry.from_settings(settings)
    store = build_store(settings.REDIS_URL)
    try:
        out = {}
        for provider in registry:
            raw = await store.get(provider_health_key(provider.id))
            out[provider.id] = json.loads(raw) if raw else None
        print(json.dumps(out, indent=2))
    finally:
        await store.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(prog="fairline", description="Odds prefetch and fair-price consensus")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Start the prefetch scheduler")
    run_parser.add_argument("--once", action="store_true", help="Run a single tick and exit")

    dump_parser = sub.add_parser("dump", help="Print unified odds with fair prices as JSON")
    dump_parser.add_argument("--sport", type=str, required=True)
    dump_parser.add_argument("--league", type=str, default=None)

    sub.add_parser("health", help="Print persisted provider health snapshots")

    args = parser.parse_args()
    setup_logging(settings.LOG_LEVEL)

    if args.command == "run":
        asyncio.run(run(args.once))
    elif args.command == "dump":
        asyncio.run(dump(args.sport, args.league))
    else:
        asyncio.run(health())


if __name__ == "__main__":
    main()
