"""Rate limiter deciding from counts held in an external store.

The limiter never records anything itself: the owner of the store writes a
row for each admitted request, and later checks see it through ``count_fn``.
It also has no timeout of its own; callers bound ``count_fn`` with the
request timeout of the surrounding HTTP framework.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from app.adapters.rate_limit.base import RateLimitDecision, WindowPolicy, wall_clock_ms

logger = logging.getLogger(__name__)

CountFn = Callable[[str, str, int], Awaitable[int]]
"""``count_fn(resource, identity, window_start_ms)`` -> requests recorded at or after window start."""

OldestFn = Callable[[str, str, int], Awaitable[int | None]]
"""``oldest_fn(resource, identity, window_start_ms)`` -> oldest counted timestamp, or None."""


class ExternalCountRateLimiter:
    """Async admission check over an externally supplied request count.

    Storage failures fail open: when ``count_fn`` raises, the request is
    admitted with ``degraded=True``, the error is logged with its traceback,
    and ``on_storage_error`` (if given) receives the exception so the caller
    can alert on it.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_ms: int,
        clock: Callable[[], int] = wall_clock_ms,
        on_storage_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._policy = WindowPolicy(max_requests=max_requests, window_ms=window_ms)
        self._clock = clock
        self._on_storage_error = on_storage_error

    @property
    def policy(self) -> WindowPolicy:
        return self._policy

    def _retry_after_ms(self, window_start: int, now: int) -> int:
        # Fixed windows (e.g. a project day) reset at a known instant. Without
        # the oldest entry a sliding window can only report its full length.
        until_reset = window_start + self._policy.window_ms - now
        if until_reset > 0:
            return until_reset
        return self._policy.window_ms

    async def _exact_retry_after_ms(
        self,
        identity: str,
        resource: str,
        window_start: int,
        now: int,
        oldest_fn: OldestFn,
    ) -> int | None:
        try:
            oldest = await oldest_fn(resource, identity, window_start)
        except Exception as exc:
            logger.warning(
                "rate_limit.oldest_unavailable",
                exc_info=True,
                extra={"error_type": type(exc).__name__, "window_ms": self._policy.window_ms},
            )
            return None
        if oldest is None:
            return None
        # Counts include the window start, so the entry leaves one ms later
        return max(1, int(oldest) + self._policy.window_ms + 1 - now)

    async def check_async(
        self,
        identity: str,
        resource: str,
        window_start_ms: int | None = None,
        now_ms: int | None = None,
        *,
        count_fn: CountFn,
        oldest_fn: OldestFn | None = None,
    ) -> RateLimitDecision:
        """Decide admission from the number of requests already recorded.

        Args:
            identity: Non-empty caller identifier.
            resource: Rate-limited target; empty means global.
            window_start_ms: Start of the counted window; defaults to now - window_ms.
            now_ms: Current time in milliseconds; defaults to the limiter clock.
            count_fn: Coroutine function returning the recorded count.
            oldest_fn: Coroutine function returning the oldest counted timestamp;
                awaited only on denial of a sliding window to report the exact wait.

        Returns:
            RateLimitDecision computed from the awaited count.

        Raises:
            ValueError: If identity is empty.
        """
        if not identity:
            raise ValueError("identity must be a non-empty string")

        now = self._clock() if now_ms is None else now_ms
        window_start = now - self._policy.window_ms if window_start_ms is None else window_start_ms
        limit = self._policy.max_requests

        try:
            count = await count_fn(resource, identity, window_start)
        except Exception as exc:
            logger.warning(
                "rate_limit.storage_unavailable",
                exc_info=True,
                extra={
                    "error_type": type(exc).__name__,
                    "limit": limit,
                    "window_ms": self._policy.window_ms,
                    "policy": "fail_open",
                },
            )
            if self._on_storage_error is not None:
                self._on_storage_error(exc)
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=0,
                retry_after_ms=0,
                degraded=True,
            )

        count = max(0, int(count))
        if count < limit:
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=limit - count - 1,
                retry_after_ms=0,
            )

        retry_after = None
        if oldest_fn is not None and window_start + self._policy.window_ms <= now:
            retry_after = await self._exact_retry_after_ms(identity, resource, window_start, now, oldest_fn)
        if retry_after is None:
            retry_after = self._retry_after_ms(window_start, now)

        return RateLimitDecision(
            allowed=False,
            limit=limit,
            remaining=0,
            retry_after_ms=retry_after,
        )
