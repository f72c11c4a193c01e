"""
backend/fairline/config.py

Purpose:
    Central settings loading for the prefetch scheduler, cache store and
    odds aggregator.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    # Cache store (empty -> in-process store)
    REDIS_URL: str = ""
    LOG_LEVEL: str = "INFO"

    # Provider registry override (JSON file with a list of provider configs)
    PROVIDERS_FILE: str = ""

    # Prefetch tick loop
    PREFETCH_INTERVAL_SECONDS: int = 60  # below ~10s risks upstream rate limits
    PREFETCH_MAX_TICK_SECONDS: int = 300

    # Backoff state machine
    PREFETCH_BASE_BACKOFF_SECONDS: int = 0  # 0 -> use the tick interval
    PREFETCH_MAX_BACKOFF_SECONDS: int = 3600
    PREFETCH_FAILURE_THRESHOLD: int = 3
    PREFETCH_RATE_LIMIT_THRESHOLD: int = 2
    FAILURE_COUNTER_TTL_SECONDS: int = 86400
    DIAGNOSTIC_TTL_SECONDS: int = 3600

    # Fetch client
    FETCH_TIMEOUT_SECONDS: float = 15.0
    FETCH_MAX_CONCURRENCY: int = 8

    # Cached payloads
    RAW_PAYLOAD_TTL_SECONDS: int = 300
    PREFETCH_STORE_MAX: int = 1000  # normalized records kept per endpoint

    # Cross-provider event join (opt-in, see services/event_join.py)
    FUZZY_EVENT_JOIN: bool = False
    FUZZY_KICKOFF_WINDOW_MINUTES: int = 90

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @property
    def base_backoff_seconds(self) -> int:
        if self.PREFETCH_BASE_BACKOFF_SECONDS > 0:
            return self.PREFETCH_BASE_BACKOFF_SECONDS
        return max(1, self.PREFETCH_INTERVAL_SECONDS)


settings = Settings()
