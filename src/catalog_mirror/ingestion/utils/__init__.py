"""
Utility modules for ingestion.

Request pacing shared by every upstream call.
"""

from catalog_mirror.ingestion.utils.rate_limiter import (
    RateLimiter,
    RateLimiterConfig,
    RateLimiterManager,
)

__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
    "RateLimiterManager",
]
