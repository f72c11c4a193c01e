import json
import logging
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlencode, urlparse

logger = logging.getLogger("fairline.fetch")

REDACTED = "***"

# Header/param names that carry credentials for the providers we talk to.
_SENSITIVE_NAMES = {
    "authorization",
    "x-api-key",
    "x-apisports-key",
    "x-auth-token",
    "x-rapidapi-key",
    "api-key",
    "apikey",
    "api_key",
    "key",
    "token",
}


def is_sensitive(name: str, extra: set[str] | None = None) -> bool:
    lowered = name.lower()
    return lowered in _SENSITIVE_NAMES or (extra is not None and lowered in extra)


def redact_headers(headers: Mapping[str, str], extra: set[str] | None = None) -> dict[str, str]:
    return {k: (REDACTED if is_sensitive(k, extra) else v) for k, v in headers.items()}


def redact_url(url: str, extra: set[str] | None = None) -> str:
    """Mask credential query params; everything else is kept for debugging."""
    parsed = urlparse(str(url))
    if not parsed.query:
        return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
    query = [(k, REDACTED if is_sensitive(k, extra) else v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)]
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}?{urlencode(query, safe='*')}"


def log_fetch_diagnostic(
    *,
    provider: str | None,
    method: str,
    url: str,
    headers: Mapping[str, str],
    status: int | None,
    elapsed_ms: float,
    error: str | None = None,
    secret_names: set[str] | None = None,
) -> None:
    """One structured line per upstream call, with credentials masked."""
    data: dict[str, Any] = {
        "provider": provider,
        "method": method,
        "url": redact_url(url, secret_names),
        "headers": redact_headers(headers, secret_names),
        "status": status,
        "elapsed_ms": round(elapsed_ms, 2),
    }
    if error:
        data["error"] = error
    level = logging.WARNING if error or status is None or status >= 400 else logging.INFO
    logger.log(level, json.dumps(data))


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
