"""
backend/fairline/services/event_join.py

Purpose:
    Opt-in cross-provider event join. Provider event ids are not a shared
    identity (numeric ids, slugs, hashes), so records for the same real match
    from different providers may never share an ``event_id``. When
    FUZZY_EVENT_JOIN is enabled, groups are merged if both team names match and
    kickoffs are within FUZZY_KICKOFF_WINDOW_MINUTES.

Notes:
    - Off by default: a false positive merges two different matches into one
      consensus, which is worse than showing them separately.
    - Groups sharing a provider are never merged; one provider does not list
      the same match twice under different ids.
    - The merged group keeps the event id of the group seen first.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fairline.models.odds import OddsRecord
from fairline.utils.team_matching import fixtures_match

logger = logging.getLogger("fairline.event_join")


def _same_fixture(a: OddsRecord, b: OddsRecord, window: timedelta) -> bool:
    if a.starts_at is None or b.starts_at is None:
        return False
    if abs(a.starts_at - b.starts_at) > window:
        return False
    return fixtures_match(a.home_team, a.away_team, b.home_team, b.away_team)


def merge_fuzzy_groups(
    groups: dict[str, list[OddsRecord]],
    window: timedelta = timedelta(minutes=90),
) -> dict[str, list[OddsRecord]]:
    merged: dict[str, list[OddsRecord]] = {}
    for event_id, records in groups.items():
        providers = {r.provider for r in records}
        target = None
        for existing_id, existing in merged.items():
            if providers & {r.provider for r in existing}:
                continue
            if _same_fixture(existing[0], records[0], window):
                target = existing_id
                break
        if target is None:
            merged[event_id] = list(records)
        else:
            logger.debug("Fuzzy join: %s merged into %s", event_id, target)
            merged[target].extend(records)
    return merged
