"""Tests for rate limiter."""

import asyncio
import time

import pytest

from catalog_mirror.ingestion.utils.rate_limiter import (
    RateLimiter,
    RateLimiterConfig,
    RateLimiterManager,
)


class TestRateLimiter:
    """Tests for RateLimiter."""

    @pytest.mark.asyncio
    async def test_first_request_immediate(self) -> None:
        """Test that the first request does not wait."""
        limiter = RateLimiter(RateLimiterConfig(min_interval_seconds=1.0))

        start = time.perf_counter()
        async with limiter:
            pass
        elapsed = time.perf_counter() - start

        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_spacing_between_starts(self) -> None:
        """Test that consecutive starts are spaced by the minimum interval."""
        limiter = RateLimiter(RateLimiterConfig(min_interval_seconds=0.2))

        start = time.perf_counter()
        for _ in range(3):
            async with limiter:
                pass
        elapsed = time.perf_counter() - start

        # Two gaps of 0.2s
        assert elapsed >= 0.35

    @pytest.mark.asyncio
    async def test_zero_interval(self) -> None:
        """Test that a zero interval never sleeps."""
        limiter = RateLimiter(RateLimiterConfig(min_interval_seconds=0.0))

        start = time.perf_counter()
        for _ in range(20):
            async with limiter:
                pass

        assert time.perf_counter() - start < 0.5

    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        """Test rate limiter as context manager."""
        limiter = RateLimiter(RateLimiterConfig(min_interval_seconds=0.0))

        async with limiter:
            assert limiter.in_flight == 1

        assert limiter.in_flight == 0

    @pytest.mark.asyncio
    async def test_in_flight_bound(self) -> None:
        """Test that no more than max_in_flight requests run at once."""
        limiter = RateLimiter(RateLimiterConfig(min_interval_seconds=0.0, max_in_flight=2))
        peak = 0

        async def work() -> None:
            nonlocal peak
            async with limiter:
                peak = max(peak, limiter.in_flight)
                await asyncio.sleep(0.05)

        await asyncio.gather(*(work() for _ in range(6)))

        assert peak == 2
        assert limiter.in_flight == 0


class TestRateLimiterManager:
    """Tests for RateLimiterManager."""

    def test_one_limiter_per_host(self) -> None:
        """Test that the same host gets the same limiter."""
        manager = RateLimiterManager()

        first = manager.get_limiter("apis.roblox.com")
        second = manager.get_limiter("apis.roblox.com")
        other = manager.get_limiter("economy.roblox.com")

        assert first is second
        assert first is not other
        assert manager.hosts == ["apis.roblox.com", "economy.roblox.com"]

    def test_shared_config(self) -> None:
        """Test that limiters use the manager's configuration."""
        config = RateLimiterConfig(min_interval_seconds=0.5, max_in_flight=3)
        manager = RateLimiterManager(config)

        assert manager.get_limiter("host").config is config
