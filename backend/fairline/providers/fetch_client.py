import logging
import time
from dataclasses import dataclass, field
from typing import Any, Literal, Optional
from urllib.parse import urlencode

import httpx

from fairline.diagnostics import log_fetch_diagnostic

logger = logging.getLogger("fairline.fetch_client")

DEFAULT_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True)
class AuthSpec:
    """How a provider expects its API key: as a query param or a header."""

    method: Literal["query", "header"]
    key: Optional[str] = None
    query_param: str = "apiKey"
    header_name: str = "X-RapidAPI-Key"

    @property
    def secret_names(self) -> set[str]:
        return {self.query_param.lower(), self.header_name.lower()}


@dataclass
class FetchResult:
    url: str
    http_status: Optional[int] = None
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.http_status is not None and 200 <= self.http_status < 300

    @property
    def rate_limited(self) -> bool:
        return self.http_status == 429


def parse_retry_after(headers: dict[str, str]) -> Optional[float]:
    """Extract wait time from Retry-After or X-RateLimit-Retry-After headers."""
    for header in ("retry-after", "x-ratelimit-retry-after"):
        value = headers.get(header)
        if value is None:
            continue
        try:
            seconds = float(value)
        except (ValueError, TypeError):
            continue
        if seconds > 0:
            return seconds
    return None


class FetchClient:
    """Single authenticated HTTP GET per call. Never retries and never raises
    on transport failure: retry and backoff belong to the scheduler.
    Redirects are followed; the result carries the final response."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )

    async def fetch(
        self,
        host: str,
        endpoint: str,
        *,
        auth: Optional[AuthSpec] = None,
        params: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
        scheme: str = "https",
        timeout: Optional[float] = None,
        provider: Optional[str] = None,
    ) -> FetchResult:
        if not host:
            raise ValueError("host required")

        url = f"{scheme}://{host}{endpoint}"
        query = dict(params or {})
        request_headers = dict(headers or {})
        if auth is not None and auth.key:
            if auth.method == "query":
                query[auth.query_param] = auth.key
            else:
                request_headers[auth.header_name] = auth.key
        elif auth is not None:
            logger.debug("[%s] no API key configured, sending unauthenticated request", provider or host)

        secret_names = auth.secret_names if auth is not None else None
        start = time.perf_counter()
        try:
            resp = await self._client.get(
                url,
                params=query or None,
                headers=request_headers,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
            log_fetch_diagnostic(
                provider=provider, method="GET", url=f"{url}?{urlencode(query)}" if query else url,
                headers=request_headers, status=None, elapsed_ms=elapsed_ms,
                error=error, secret_names=secret_names,
            )
            return FetchResult(url=url, error=error, elapsed_ms=elapsed_ms)

        elapsed_ms = (time.perf_counter() - start) * 1000
        try:
            body = resp.json()
        except ValueError:
            body = None

        log_fetch_diagnostic(
            provider=provider, method="GET", url=str(resp.request.url),
            headers=request_headers, status=resp.status_code, elapsed_ms=elapsed_ms,
            secret_names=secret_names,
        )
        return FetchResult(
            url=url,
            http_status=resp.status_code,
            body=body,
            headers={k.lower(): v for k, v in resp.headers.items()},
            elapsed_ms=elapsed_ms,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "FetchClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
