"""Async HTTP client with host allowlisting, rate limiting and bounded retries."""

import asyncio
import time
from typing import Any

import httpx

from renovate_safety.errors import (
    NetworkError,
    NotFoundError,
    RateLimitError,
    SourceUnavailableError,
)
from renovate_safety.utils.logging import get_logger
from renovate_safety.validation import ensure_allowed_url

logger = get_logger(__name__)


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(
        self,
        requests_per_window: int,
        window_seconds: float,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            requests_per_window: Maximum requests allowed per window.
            window_seconds: Time window in seconds.
        """
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.tokens = float(requests_per_window)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Acquire a token, waiting if necessary."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.last_update = now

            self.tokens = min(
                float(self.requests_per_window),
                self.tokens + elapsed * (self.requests_per_window / self.window_seconds),
            )

            if self.tokens < 1:
                wait_time = (1 - self.tokens) * (self.window_seconds / self.requests_per_window)
                logger.debug("Rate limit: waiting %.2f seconds", wait_time)
                await asyncio.sleep(wait_time)
                self.tokens = 0
            else:
                self.tokens -= 1


def create_github_rate_limiter(authenticated: bool = False) -> RateLimiter:
    """Create a rate limiter matching GitHub's REST API quotas.

    Args:
        authenticated: Whether requests carry a token.

    Returns:
        Configured rate limiter.
    """
    if authenticated:
        return RateLimiter(requests_per_window=5000, window_seconds=3600)
    return RateLimiter(requests_per_window=60, window_seconds=3600)


class AsyncHttpClient:
    """Async HTTP client used by every registry and hosting provider.

    Every request URL is checked against the host allowlist first. Failures
    are raised as ``SourceUnavailableError`` subclasses so callers can turn
    them into explicit failure outcomes. Only requests made with
    ``retry=True`` (idempotent metadata lookups) are retried.
    """

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_RETRIES = 3
    RETRY_DELAYS = [1.0, 2.0, 4.0]

    def __init__(
        self,
        service: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_RETRIES,
        rate_limiter: RateLimiter | None = None,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            service: Human readable service name used in error messages.
            timeout: Request timeout in seconds.
            max_retries: Maximum number of retries for retryable requests.
            rate_limiter: Optional rate limiter instance.
            headers: Default headers for all requests.
            client: Optional pre-built httpx client (not closed on exit).
        """
        self.service = service
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limiter = rate_limiter
        self.default_headers = headers or {}
        self._client = client
        self._owns_client = False

    async def __aenter__(self) -> "AsyncHttpClient":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.default_headers,
                follow_redirects=True,
            )
            self._owns_client = True
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._owns_client and self._client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the underlying httpx client."""
        if self._client is None:
            raise RuntimeError("Client not initialized. Use async with statement.")
        return self._client

    def _delay(self, attempt: int) -> float:
        return self.RETRY_DELAYS[min(attempt, len(self.RETRY_DELAYS) - 1)]

    async def _request(
        self,
        method: str,
        url: str,
        retry: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an HTTP request.

        Args:
            method: HTTP method.
            url: Absolute request URL.
            retry: Whether transient failures may be retried.
            **kwargs: Additional arguments for httpx.

        Returns:
            HTTP response with a 2xx status.

        Raises:
            ValidationError: If the URL host is not allowlisted.
            NotFoundError: On HTTP 404.
            RateLimitError: On HTTP 429 once retries are exhausted.
            NetworkError: On connection failures and timeouts.
            SourceUnavailableError: On any other HTTP error status.
        """
        ensure_allowed_url(url)

        headers = {**self.default_headers, **(kwargs.pop("headers", None) or {})}
        attempts = self.max_retries + 1 if retry else 1

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            if self.rate_limiter:
                await self.rate_limiter.acquire()

            try:
                response = await self.client.request(method, url, headers=headers, **kwargs)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if not last_attempt:
                    delay = self._delay(attempt)
                    logger.warning(
                        "%s connection error, retrying in %.1f seconds: %s",
                        self.service,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(self.service, e) from e

            if response.status_code == 404:
                raise NotFoundError(f"{self.service} returned 404 for {url}")

            if response.status_code == 429 or (
                response.status_code == 403
                and response.headers.get("X-RateLimit-Remaining") == "0"
            ):
                retry_after = response.headers.get("Retry-After")
                if not last_attempt:
                    wait_time = float(retry_after) if retry_after else self._delay(attempt)
                    logger.warning(
                        "%s rate limited, waiting %.1f seconds", self.service, wait_time
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise RateLimitError(
                    self.service,
                    int(retry_after) if retry_after and retry_after.isdigit() else None,
                )

            if response.status_code >= 500 and not last_attempt:
                delay = self._delay(attempt)
                logger.warning(
                    "%s server error %d, retrying in %.1f seconds",
                    self.service,
                    response.status_code,
                    delay,
                )
                await asyncio.sleep(delay)
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise SourceUnavailableError(self.service, e) from e
            return response

        raise RuntimeError("Unexpected retry loop exit")

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        retry: bool = False,
    ) -> httpx.Response:
        """Make a GET request.

        Args:
            url: Request URL.
            params: Query parameters.
            headers: Additional headers.
            retry: Whether transient failures may be retried.

        Returns:
            HTTP response.
        """
        return await self._request("GET", url, retry=retry, params=params, headers=headers)

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        retry: bool = False,
    ) -> Any:
        """Make a GET request and parse the JSON response.

        Raises:
            SourceUnavailableError: If the body is not valid JSON.
        """
        response = await self.get(url, params=params, headers=headers, retry=retry)
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailableError(self.service, e, f"{self.service} returned invalid JSON") from e

    async def get_bytes(self, url: str, max_bytes: int) -> bytes:
        """Download a binary payload, refusing anything larger than ``max_bytes``.

        Raises:
            SourceUnavailableError: If the payload exceeds the size limit.
        """
        response = await self.get(url)
        content = response.content
        if len(content) > max_bytes:
            raise SourceUnavailableError(
                self.service,
                message=f"{url} is larger than {max_bytes} bytes",
            )
        return content
