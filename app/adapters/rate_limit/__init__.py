"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start
with in-process limiters and later migrate to a shared store without
changing the API layer.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitDecision,
    RequestKey,
    WindowPolicy,
    wall_clock_ms,
)
from app.adapters.rate_limit.external_count import CountFn, ExternalCountRateLimiter, OldestFn
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "CountFn",
    "ExternalCountRateLimiter",
    "InMemorySlidingWindowRateLimiter",
    "OldestFn",
    "RateLimitDecision",
    "RequestKey",
    "WindowPolicy",
    "wall_clock_ms",
]
