"""Rate limiter interfaces and value types.

The API should depend on this abstraction (not the concrete implementation)
so the in-memory limiter can later be replaced by a shared store with
minimal changes to the HTTP layer.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass


def wall_clock_ms() -> int:
    """Return the current UNIX time in whole milliseconds."""
    return int(time.time() * 1000)


def _require_positive_int(name: str, value: int) -> None:
    # bool is an int subclass; True would silently mean 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < 1:
        raise ValueError(f"{name} must be >= 1")


@dataclass(frozen=True)
class WindowPolicy:
    """Sliding window configuration.

    Attributes:
        max_requests: Admission ceiling per window.
        window_ms: Window length in milliseconds.

    Raises:
        ValueError: If either value is not a positive integer.
    """

    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        _require_positive_int("max_requests", self.max_requests)
        _require_positive_int("window_ms", self.window_ms)


@dataclass(frozen=True)
class RequestKey:
    """Composite (identity, resource) key.

    An empty resource stands for a global budget shared by all resources.
    """

    identity: str
    resource: str = ""

    @property
    def storage_key(self) -> str:
        """Opaque string form, unique per (identity, resource) pair.

        The identity is length-prefixed so separators inside either part
        cannot make two different pairs render the same string.
        """
        return f"{len(self.identity)}:{self.identity}:{self.resource}"


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests still admissible in the current window (0 when blocked).
        retry_after_ms: Milliseconds until the window admits again (0 when allowed).
        degraded: True when the decision was made without consulting storage
            (fail-open path).
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_ms: int
    degraded: bool = False


class AbstractRateLimiter(ABC):
    """Interface for synchronous rate limiters."""

    @abstractmethod
    def check(
        self,
        identity: str,
        resource: str = "",
        now_ms: int | None = None,
    ) -> RateLimitDecision:
        """Decide whether a request may proceed and record it when admitted.

        Args:
            identity: Stable caller identifier (user id or network address).
            resource: Rate-limited target, e.g. a project id. Empty means global.
            now_ms: Current time in milliseconds; defaults to the limiter clock.

        Returns:
            RateLimitDecision describing whether it was allowed.
        """
        raise NotImplementedError
