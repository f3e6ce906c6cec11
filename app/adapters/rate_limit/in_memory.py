"""In-memory sliding-log rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: prune, count and append happen under one lock, so decisions
  for a key are linearizable.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitDecision,
    RequestKey,
    WindowPolicy,
    wall_clock_ms,
)

logger = logging.getLogger(__name__)


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping the admitted timestamps of each key.

    A request is admitted when fewer than ``max_requests`` timestamps fall in
    the window ``(now - window_ms, now]``. Rejected requests are not logged.

    Expired timestamps are pruned lazily when their key is next checked. Keys
    whose history has fully expired are dropped by :meth:`sweep`, which also
    runs from :meth:`check` every ``sweep_interval_ms`` of clock time when
    that option is set.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_ms: int,
        clock: Callable[[], int] = wall_clock_ms,
        sweep_interval_ms: int | None = None,
    ) -> None:
        """Initialize the limiter.

        Args:
            max_requests: Maximum number of admitted requests per window.
            window_ms: Size of the sliding window in milliseconds.
            clock: Time source returning UNIX time in milliseconds.
            sweep_interval_ms: Clock time between automatic sweeps; None disables them.

        Raises:
            ValueError: If max_requests, window_ms or sweep_interval_ms are invalid.
        """
        self._policy = WindowPolicy(max_requests=max_requests, window_ms=window_ms)
        if sweep_interval_ms is not None and sweep_interval_ms < 1:
            raise ValueError("sweep_interval_ms must be >= 1")

        self._clock = clock
        self._sweep_interval_ms = sweep_interval_ms
        self._next_sweep_at: int | None = None
        self._high_water: int | None = None
        self._lock = threading.RLock()
        self._logs: dict[str, deque[int]] = {}

    @classmethod
    def from_policy(
        cls,
        policy: WindowPolicy,
        **kwargs,
    ) -> "InMemorySlidingWindowRateLimiter":
        """Build a limiter bound to an existing policy."""
        return cls(max_requests=policy.max_requests, window_ms=policy.window_ms, **kwargs)

    @property
    def policy(self) -> WindowPolicy:
        return self._policy

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)

    def _observe(self, requested: int) -> int:
        # Never evaluate a time older than one already seen; a sweep at a
        # later time may have dropped history that an earlier time would count
        if self._high_water is None or requested > self._high_water:
            self._high_water = requested
        return self._high_water

    def _prune(self, log: deque[int], window_start: int) -> None:
        while log and log[0] <= window_start:
            log.popleft()

    def _maybe_sweep(self, now: int) -> None:
        if self._sweep_interval_ms is None:
            return
        if self._next_sweep_at is None:
            self._next_sweep_at = now + self._sweep_interval_ms
            return
        if now >= self._next_sweep_at:
            self._sweep_locked(now)
            self._next_sweep_at = now + self._sweep_interval_ms

    def _sweep_locked(self, now: int) -> int:
        window_start = now - self._policy.window_ms
        stale = []
        for key, log in self._logs.items():
            self._prune(log, window_start)
            if not log:
                stale.append(key)
        for key in stale:
            del self._logs[key]
        if stale:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed_keys": len(stale), "tracked_keys": len(self._logs)},
            )
        return len(stale)

    def sweep(self, now_ms: int | None = None) -> int:
        """Drop every key whose history has fully expired.

        Args:
            now_ms: Reference time; defaults to the limiter clock.

        Returns:
            Number of keys removed.
        """
        requested = self._clock() if now_ms is None else now_ms
        with self._lock:
            return self._sweep_locked(self._observe(requested))

    def reset(self, identity: str, resource: str = "") -> None:
        """Forget the history of a single key."""
        with self._lock:
            self._logs.pop(RequestKey(identity, resource).storage_key, None)

    def check(
        self,
        identity: str,
        resource: str = "",
        now_ms: int | None = None,
    ) -> RateLimitDecision:
        """Check the window for (identity, resource) and record the request if admitted.

        A ``now_ms`` older than the latest time the limiter has already seen
        (clock went backwards) is treated as that latest time, so neither
        pruning nor sweeping can forget a request still inside its window.

        Args:
            identity: Non-empty caller identifier.
            resource: Rate-limited target; empty means global.
            now_ms: Current time in milliseconds; defaults to the limiter clock.

        Returns:
            RateLimitDecision with the admission decision and metadata.

        Raises:
            ValueError: If identity is empty.
        """
        if not identity:
            raise ValueError("identity must be a non-empty string")

        key = RequestKey(identity, resource).storage_key
        requested = self._clock() if now_ms is None else now_ms
        limit = self._policy.max_requests

        with self._lock:
            now = self._observe(requested)
            self._maybe_sweep(now)

            log = self._logs.get(key)
            if log:
                self._prune(log, now - self._policy.window_ms)
            count = len(log) if log else 0

            if count < limit:
                if log is None:
                    log = deque()
                    self._logs[key] = log
                log.append(now)
                return RateLimitDecision(
                    allowed=True,
                    limit=limit,
                    remaining=limit - len(log),
                    retry_after_ms=0,
                )

            retry_after = math.ceil(log[0] + self._policy.window_ms - now)
            return RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                retry_after_ms=max(0, retry_after),
            )
