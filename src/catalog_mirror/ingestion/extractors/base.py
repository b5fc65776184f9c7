"""
Rate-limited HTTP client with retry logic and error handling.

Every upstream call in the pipeline goes through RateLimitedClient:
per-host pacing, exponential backoff with jitter on transient
failures, and a single error type for callers to handle.
"""

from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from catalog_mirror.config import RetryConfig, UpstreamConfig, get_settings
from catalog_mirror.ingestion.utils.rate_limiter import RateLimiterConfig, RateLimiterManager
from catalog_mirror.logger import get_logger

BODY_PREVIEW_CHARS = 200


class FetchError(Exception):
    """A request that could not produce a usable response."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
        attempts: int = 1,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body
        self.attempts = attempts
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)


class TransientTransportError(FetchError):
    """Raised for 429, 5xx and network failures; retried by the client."""

    pass


def is_retryable_status(status_code: int) -> bool:
    """429 and every 5xx are worth another attempt."""
    return status_code == 429 or status_code >= 500


def _preview(response: httpx.Response) -> str:
    try:
        return response.text[:BODY_PREVIEW_CHARS]
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""


class RateLimitedClient:
    """
    Transport shared by the crawler and the enricher.

    Knows nothing about pagination or entities. Provides:
    - HTTP client management
    - Per-host pacing and in-flight bound
    - Retry with exponential backoff and jitter
    - Structured logging of retries and failures

    Example:
        >>> async with RateLimitedClient() as client:
        ...     payload = await client.get_json(url, params={"limit": 100})
    """

    def __init__(
        self,
        *,
        upstream_config: UpstreamConfig | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            upstream_config: Pacing, timeout and user agent (defaults from settings)
            retry_config: Backoff configuration (defaults from settings)
            transport: Optional httpx transport (tests, proxies)
        """
        if upstream_config is None or retry_config is None:
            settings = get_settings()
            upstream_config = upstream_config or settings.upstream
            retry_config = retry_config or settings.retry
        self._upstream = upstream_config
        self._retry_config = retry_config
        self._transport = transport
        self._limiters = RateLimiterManager(
            RateLimiterConfig(
                min_interval_seconds=upstream_config.request_delay_seconds,
                max_in_flight=upstream_config.max_in_flight,
            )
        )
        self._logger = get_logger(__name__, component="client")
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._upstream.timeout_seconds),
                follow_redirects=True,
                transport=self._transport,
                headers={
                    "User-Agent": self._upstream.user_agent,
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RateLimitedClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _retrying(self) -> AsyncRetrying:
        """Create the retry controller with current configuration."""
        config = self._retry_config
        return AsyncRetrying(
            retry=retry_if_exception_type(TransientTransportError),
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_exponential(
                multiplier=config.base_delay_seconds,
                exp_base=2,
                max=config.max_delay_seconds,
            )
            + wait_random(0, config.jitter_seconds),
            before_sleep=self._log_retry_attempt,
            reraise=False,
        )

    def _log_retry_attempt(self, retry_state: RetryCallState) -> None:
        """Log retry attempts for observability."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self._logger.warning(
            "Retrying request",
            attempt=retry_state.attempt_number,
            wait_seconds=round(retry_state.next_action.sleep, 3) if retry_state.next_action else 0,
            status_code=getattr(exc, "status_code", None),
            exception=str(exc) if exc else None,
        )

    async def _send_once(
        self,
        method: str,
        url: str,
        *,
        allow_error_status: bool,
        **kwargs: Any,
    ) -> httpx.Response:
        limiter = self._limiters.get_limiter(urlsplit(url).netloc)
        async with limiter:
            self._logger.debug("Making request", method=method, url=url)
            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                raise TransientTransportError(
                    f"Network error: {e.__class__.__name__}: {e}",
                    endpoint=url,
                    original_error=e,
                ) from e

        if is_retryable_status(response.status_code):
            raise TransientTransportError(
                f"Upstream returned {response.status_code}",
                endpoint=url,
                status_code=response.status_code,
                body=_preview(response),
            )

        if response.status_code >= 400 and not allow_error_status:
            raise FetchError(
                f"Upstream returned {response.status_code}: {_preview(response)}",
                endpoint=url,
                status_code=response.status_code,
                body=_preview(response),
            )

        return response

    async def request(
        self,
        method: str,
        url: str,
        *,
        allow_error_status: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make HTTP request with pacing and retry logic.

        Args:
            method: HTTP method (GET, HEAD, ...)
            url: Request URL
            allow_error_status: Return non-retryable 4xx responses instead of raising
            **kwargs: Additional arguments passed to httpx (params, headers,
                follow_redirects, ...)

        Returns:
            httpx.Response: Final response

        Raises:
            FetchError: Non-retryable error status, or retries exhausted
        """
        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    return await self._send_once(
                        method, url, allow_error_status=allow_error_status, **kwargs
                    )
        except RetryError as e:
            last = e.last_attempt.exception()
            status_code = getattr(last, "status_code", None)
            body = getattr(last, "body", None)
            self._logger.error(
                "Request failed after retries",
                url=url,
                attempts=attempts,
                status_code=status_code,
            )
            raise FetchError(
                f"Request failed after {attempts} attempts: {last}",
                endpoint=url,
                status_code=status_code,
                body=body,
                attempts=attempts,
                original_error=last if isinstance(last, Exception) else None,
            ) from e
        raise AssertionError("unreachable: retry loop exited without outcome")

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
    ) -> Any | None:
        """
        GET a JSON document.

        A body that is not valid JSON is reported as None rather than
        raised; callers treat it as "no data".

        Raises:
            FetchError: See request()
        """
        response = await self.request("GET", url, params=params)
        try:
            return response.json()
        except ValueError:
            self._logger.warning(
                "Response body is not JSON",
                url=url,
                status_code=response.status_code,
                body=_preview(response),
            )
            return None
