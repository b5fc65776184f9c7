"""
Per-host request pacing for upstream APIs.

Spaces request starts by a fixed minimum interval and bounds how many
requests to one host may be in flight at the same time.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from catalog_mirror.logger import get_logger


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter."""

    min_interval_seconds: float = 0.15
    max_in_flight: int = 8


@dataclass
class RateLimiter:
    """
    Minimum-spacing limiter with a concurrency bound.

    A slot is held for the whole request; the spacing applies to
    request starts, so pages of one pass and lookups of sibling
    entities share one cadence per host.

    Example:
        >>> limiter = RateLimiter(RateLimiterConfig(min_interval_seconds=0.2))
        >>> async with limiter:
        ...     await make_request()
    """

    config: RateLimiterConfig
    _semaphore: asyncio.Semaphore = field(init=False)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)
    _last_start: float = field(init=False, default=0.0)
    _in_flight: int = field(init=False, default=0)
    _logger: Any = field(init=False)

    def __post_init__(self) -> None:
        """Initialize limiter state."""
        self._semaphore = asyncio.Semaphore(self.config.max_in_flight)
        self._logger = get_logger(__name__, component="rate_limiter")

    async def acquire(self) -> None:
        """
        Acquire an in-flight slot, then wait out the minimum spacing.
        """
        await self._semaphore.acquire()
        try:
            async with self._lock:
                wait_time = self.config.min_interval_seconds - (
                    time.monotonic() - self._last_start
                )
                if wait_time > 0:
                    self._logger.debug(
                        "Spacing request",
                        wait_seconds=round(wait_time, 3),
                    )
                    await asyncio.sleep(wait_time)
                self._last_start = time.monotonic()
        except BaseException:
            self._semaphore.release()
            raise
        self._in_flight += 1

    def release(self) -> None:
        """Release an in-flight slot."""
        self._in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "RateLimiter":
        """Acquire on context entry."""
        await self.acquire()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Release on context exit."""
        self.release()

    @property
    def in_flight(self) -> int:
        """Requests currently holding a slot (for monitoring)."""
        return self._in_flight


class RateLimiterManager:
    """
    Hands out one rate limiter per upstream host.

    Owned by a client instance, so separate runs and tests never
    share pacing state.
    """

    def __init__(self, config: RateLimiterConfig | None = None) -> None:
        self._config = config or RateLimiterConfig()
        self._limiters: dict[str, RateLimiter] = {}

    def get_limiter(self, host: str) -> RateLimiter:
        """
        Get or create the limiter for a host.

        Args:
            host: Upstream host name

        Returns:
            RateLimiter: Limiter shared by every request to that host
        """
        if host not in self._limiters:
            self._limiters[host] = RateLimiter(self._config)
        return self._limiters[host]

    @property
    def hosts(self) -> list[str]:
        """Hosts that have been contacted so far."""
        return sorted(self._limiters)
