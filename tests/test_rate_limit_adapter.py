"""Unit tests for the in-memory sliding window rate limiter adapter."""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit import InMemorySlidingWindowRateLimiter, RequestKey, WindowPolicy


def _limiter(**kwargs) -> InMemorySlidingWindowRateLimiter:
    kwargs.setdefault("max_requests", 3)
    kwargs.setdefault("window_ms", 1000)
    return InMemorySlidingWindowRateLimiter(**kwargs)


def test_blocks_fourth_request_inside_window() -> None:
    limiter = _limiter()

    assert limiter.check("u1", "p1", now_ms=0).allowed is True
    assert limiter.check("u1", "p1", now_ms=100).allowed is True
    assert limiter.check("u1", "p1", now_ms=200).allowed is True

    blocked = limiter.check("u1", "p1", now_ms=300)
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.retry_after_ms == 700


def test_admits_again_once_oldest_expires() -> None:
    limiter = _limiter()
    for t in (0, 100, 200):
        limiter.check("u1", "p1", now_ms=t)
    assert limiter.check("u1", "p1", now_ms=300).allowed is False

    result = limiter.check("u1", "p1", now_ms=1001)
    assert result.allowed is True
    assert result.retry_after_ms == 0


def test_timestamp_on_window_start_is_expired() -> None:
    limiter = _limiter(max_requests=1)

    assert limiter.check("u1", "p1", now_ms=0).allowed is True
    assert limiter.check("u1", "p1", now_ms=999).allowed is False
    assert limiter.check("u1", "p1", now_ms=1000).allowed is True


def test_keys_are_independent() -> None:
    limiter = _limiter(max_requests=1)

    assert limiter.check("u1", "p1", now_ms=0).allowed is True
    assert limiter.check("u1", "p1", now_ms=0).allowed is False

    assert limiter.check("u2", "p1", now_ms=0).allowed is True
    assert limiter.check("u1", "p2", now_ms=0).allowed is True


def test_keys_do_not_collide_on_separators() -> None:
    limiter = _limiter(max_requests=1)

    assert limiter.check("a_b", "c", now_ms=0).allowed is True
    assert limiter.check("a", "b_c", now_ms=0).allowed is True
    assert RequestKey("a_b", "c").storage_key != RequestKey("a", "b_c").storage_key


def test_remaining_is_non_increasing_until_expiry() -> None:
    limiter = _limiter(max_requests=4)

    remaining = [limiter.check("u1", "p1", now_ms=t).remaining for t in (0, 10, 20, 30)]

    assert remaining == [3, 2, 1, 0]


def test_rejection_does_not_change_state() -> None:
    limiter = _limiter(max_requests=2)
    limiter.check("u1", "p1", now_ms=0)
    limiter.check("u1", "p1", now_ms=400)

    first = limiter.check("u1", "p1", now_ms=500)
    second = limiter.check("u1", "p1", now_ms=500)
    third = limiter.check("u1", "p1", now_ms=500)

    assert first == second == third
    assert first.allowed is False
    assert first.retry_after_ms == 500
    # Rejections were not logged: only the t=0 entry has to expire
    assert limiter.check("u1", "p1", now_ms=1000).allowed is True


def test_clock_going_backwards_is_clamped() -> None:
    limiter = _limiter(max_requests=2)
    limiter.check("u1", "p1", now_ms=5000)
    limiter.check("u1", "p1", now_ms=5500)

    blocked = limiter.check("u1", "p1", now_ms=3000)

    assert blocked.allowed is False
    # Evaluated as if now were 5500, never negative
    assert blocked.retry_after_ms == 500


def test_clock_going_backwards_does_not_admit_early() -> None:
    limiter = _limiter(max_requests=1)
    limiter.check("u1", "p1", now_ms=10_000)

    assert limiter.check("u1", "p1", now_ms=0).allowed is False
    assert limiter.check("u1", "p1", now_ms=10_999).allowed is False
    assert limiter.check("u1", "p1", now_ms=11_000).allowed is True


def test_sweep_then_clock_going_backwards_keeps_history() -> None:
    limiter = _limiter(max_requests=1, sweep_interval_ms=1)
    assert limiter.check("a", "p", now_ms=3500).allowed is True

    # Sweeps at t=5000 while key "a" looks expired
    limiter.check("b", "p", now_ms=5000)

    # Evaluated at t=5000 as well, where the 3500 entry has expired
    assert limiter.check("a", "p", now_ms=3600).allowed is True
    assert limiter.check("a", "p", now_ms=3700).allowed is False


def test_clock_is_clamped_across_keys() -> None:
    limiter = _limiter(max_requests=1)
    limiter.check("a", "p", now_ms=3500)
    limiter.check("b", "p", now_ms=5000)

    blocked = limiter.check("b", "p", now_ms=100)

    assert blocked.allowed is False
    assert blocked.retry_after_ms == 1000


def test_unknown_key_is_treated_as_empty_history() -> None:
    limiter = _limiter()

    result = limiter.check("never-seen", "", now_ms=42)

    assert result.allowed is True
    assert result.remaining == 2
    assert result.limit == 3


def test_uses_clock_when_now_is_omitted() -> None:
    clock = Mock(return_value=1_000_000)
    limiter = _limiter(max_requests=1, clock=clock)

    assert limiter.check("u1", "p1").allowed is True
    blocked = limiter.check("u1", "p1")
    assert blocked.retry_after_ms == 1000

    clock.return_value = 1_001_000
    assert limiter.check("u1", "p1").allowed is True


def test_sweep_drops_only_fully_expired_keys() -> None:
    limiter = _limiter()
    limiter.check("old", "p1", now_ms=0)
    limiter.check("fresh", "p1", now_ms=900)

    removed = limiter.sweep(now_ms=1500)

    assert removed == 1
    assert len(limiter) == 1
    # The surviving entry still counts
    limiter.check("fresh", "p1", now_ms=1500)
    limiter.check("fresh", "p1", now_ms=1500)
    assert limiter.check("fresh", "p1", now_ms=1500).allowed is False


def test_periodic_sweep_runs_from_check() -> None:
    limiter = _limiter(sweep_interval_ms=5000)
    limiter.check("a", "p1", now_ms=0)
    limiter.check("b", "p1", now_ms=100)
    assert len(limiter) == 2

    limiter.check("c", "p1", now_ms=5000)

    assert len(limiter) == 1


def test_reset_forgets_history() -> None:
    limiter = _limiter(max_requests=1)
    limiter.check("u1", "p1", now_ms=0)

    limiter.reset("u1", "p1")

    assert limiter.check("u1", "p1", now_ms=1).allowed is True


def test_parallel_checks_admit_exactly_max_requests() -> None:
    n = 50
    limiter = _limiter(max_requests=n, window_ms=60_000)
    barrier = threading.Barrier(n * 2)

    def hit(_: int) -> bool:
        barrier.wait()
        return limiter.check("u1", "p1", now_ms=1000).allowed

    with ThreadPoolExecutor(max_workers=n * 2) as pool:
        results = list(pool.map(hit, range(n * 2)))

    assert results.count(True) == n
    assert results.count(False) == n


def test_from_policy() -> None:
    limiter = InMemorySlidingWindowRateLimiter.from_policy(WindowPolicy(max_requests=2, window_ms=10))

    assert limiter.policy.max_requests == 2
    assert limiter.check("u1", now_ms=0).remaining == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_requests": 0, "window_ms": 1000},
        {"max_requests": 1, "window_ms": 0},
        {"max_requests": -1, "window_ms": 1000},
        {"max_requests": True, "window_ms": 1000},
        {"max_requests": 1.5, "window_ms": 1000},
        {"max_requests": 1, "window_ms": 1000, "sweep_interval_ms": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemorySlidingWindowRateLimiter(**kwargs)


def test_empty_identity_is_rejected() -> None:
    limiter = _limiter()

    with pytest.raises(ValueError):
        limiter.check("", "p1", now_ms=0)
