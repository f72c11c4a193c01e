"""
backend/fairline/models/health.py

Purpose:
    Per provider/endpoint health state for the prefetch backoff state machine,
    plus the failure diagnostic persisted next to it.

Dependencies:
    - dataclasses
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class HealthStatus(str, Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    BACKOFF = "BACKOFF"


# Worst-first, used to roll endpoint states up into one provider status.
_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.BACKOFF: 2}


@dataclass
class ProviderHealth:
    provider_id: str
    endpoint: str
    consecutive_failures: int = 0
    rate_limit_hits: int = 0
    last_success_at: float | None = None
    last_failure_at: float | None = None
    backoff_until: float | None = None
    status: HealthStatus = HealthStatus.HEALTHY

    def in_backoff(self, now: float) -> bool:
        """True while the endpoint must not be attempted."""
        return (
            self.status == HealthStatus.BACKOFF
            and self.backoff_until is not None
            and now < self.backoff_until
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


def worst_status(states: list[ProviderHealth]) -> HealthStatus:
    if not states:
        return HealthStatus.HEALTHY
    return max((s.status for s in states), key=lambda st: _SEVERITY[st])


@dataclass(frozen=True)
class FailureDiagnostic:
    status: int | None
    reason: str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
