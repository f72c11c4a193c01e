"""
backend/fairline/mappers/base.py

Purpose:
    Shared building blocks for provider mappers: payload shape classification
    (tagged variants with an explicit unknown bucket), prioritized named
    extractors, and the never-raise mapper wrapper.

    Mapper contract: ``map_x(raw, *, sport, league) -> list[OddsRecord]``.
    Malformed input yields ``[]``; a malformed item is skipped on its own.

Dependencies:
    - pydantic
    - fairline.models.odds
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

from pydantic import ValidationError

from fairline.errors import MalformedDataError
from fairline.models.odds import Markets, OddsRecord
from fairline.utils import utcnow

logger = logging.getLogger("fairline.mappers")

Extractor = Callable[[dict[str, Any]], Any]
Mapper = Callable[..., list[OddsRecord]]

UNKNOWN_SHAPE = "unknown"


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

def path(*keys: str) -> Extractor:
    """Extractor reading a (possibly nested) key, named after its dotted path."""

    def _extract(item: dict[str, Any]) -> Any:
        node: Any = item
        for key in keys:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        # A nested object where a scalar is expected (e.g. homeTeam={...}) is no match.
        if isinstance(node, (dict, list)):
            return None
        return node

    _extract.__name__ = ".".join(keys)
    return _extract


def first_of(item: dict[str, Any], extractors: Sequence[Extractor]) -> Any:
    """Value of the first extractor (in list order) that yields something."""
    for extractor in extractors:
        value = extractor(item)
        if value is not None and value != "":
            return value
    return None


# ---------------------------------------------------------------------------
# Shape classification
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Shape:
    """One known payload variant: a tag, a matcher and the item list accessor."""

    tag: str
    matches: Callable[[Any], bool]
    items: Callable[[Any], list[Any]]


def list_under(key: str) -> Shape:
    return Shape(
        tag=f"{key}_list",
        matches=lambda raw: isinstance(raw, dict) and isinstance(raw.get(key), list),
        items=lambda raw: raw[key],
    )


BARE_LIST = Shape(tag="bare_list", matches=lambda raw: isinstance(raw, list), items=lambda raw: raw)


def classify(provider: str, raw: Any, shapes: Sequence[Shape]) -> tuple[str, list[Any]]:
    """Match ``raw`` against ``shapes`` in order; unknown shapes raise."""
    for shape in shapes:
        if shape.matches(raw):
            return shape.tag, shape.items(raw)
    kind = type(raw).__name__
    keys = sorted(raw.keys())[:10] if isinstance(raw, dict) else None
    raise MalformedDataError(provider, f"{UNKNOWN_SHAPE} payload shape ({kind}, keys={keys})")


# ---------------------------------------------------------------------------
# Record building
# ---------------------------------------------------------------------------

def build_record(
    provider: str,
    *,
    sport: str,
    league: str | None,
    event_id: Any,
    home_team: Any,
    away_team: Any,
    starts_at: Any,
    bookmaker: Any,
    moneyline: dict[str, Any] | None = None,
    spread: dict[str, Any] | None = None,
    total: dict[str, Any] | None = None,
    last_updated: Any = None,
) -> OddsRecord:
    try:
        return OddsRecord(
            provider=provider,
            sport=sport,
            league=league,
            event_id=event_id,
            home_team=home_team,
            away_team=away_team,
            starts_at=starts_at,
            bookmaker=bookmaker,
            markets=Markets(
                moneyline=moneyline or {},
                spread=spread or {},
                total=total or {},
            ),
            last_updated=last_updated or utcnow(),
        )
    except ValidationError as exc:
        raise MalformedDataError(provider, f"invalid record: {exc.error_count()} errors") from exc


def map_items(
    provider: str,
    items: Iterable[Any],
    build: Callable[[dict[str, Any]], list[OddsRecord]],
) -> list[OddsRecord]:
    """Apply ``build`` per item; malformed items are logged and skipped."""
    records: list[OddsRecord] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            records.extend(build(item))
        except MalformedDataError as exc:
            skipped += 1
            logger.debug("Skipping %s item: %s", provider, exc.reason)
        except Exception as exc:
            # Drift inside one item (e.g. a scalar where a list belongs) costs that item only.
            skipped += 1
            logger.debug("Skipping %s item: %s: %s", provider, type(exc).__name__, exc)
    if skipped:
        logger.warning("%s: skipped %d malformed items (%d records mapped)", provider, skipped, len(records))
    return records


def safe_mapper(provider: str) -> Callable[[Mapper], Mapper]:
    """Decorator enforcing the never-raise contract of a mapper."""

    def decorator(func: Mapper) -> Mapper:
        @functools.wraps(func)
        def wrapper(raw: Any, **context: Any) -> list[OddsRecord]:
            if raw is None:
                return []
            try:
                return func(raw, **context)
            except MalformedDataError as exc:
                logger.warning("Unmappable %s payload: %s", provider, exc.reason)
            except Exception:
                logger.exception("Mapper %s failed", func.__name__)
            return []

        return wrapper

    return decorator
