from __future__ import annotations

from lecture_tracker.services.rate_limiter import SlidingWindowRateLimiter


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_rate_limiter_rejects_request_over_window_limit() -> None:
    clock = _Clock(1_000.0)
    limiter = SlidingWindowRateLimiter(max_requests=100, window_seconds=60, clock=clock)

    for _ in range(100):
        assert limiter.take("10.0.0.1").allowed is True

    clock.now += 20.2
    rejected = limiter.take("10.0.0.1")
    assert rejected.allowed is False
    assert rejected.remaining == 0
    assert rejected.retry_after_seconds == 40


def test_rate_limiter_opens_new_window_after_expiry() -> None:
    clock = _Clock(0.0)
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)

    assert limiter.take("client").allowed is True
    assert limiter.take("client").allowed is True
    assert limiter.take("client").allowed is False

    clock.now = 60.0
    decision = limiter.take("client")
    assert decision.allowed is True
    assert decision.remaining == 1
    assert decision.reset_after_seconds == 60


def test_rate_limiter_tracks_clients_independently() -> None:
    clock = _Clock(0.0)
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)

    assert limiter.take("a").allowed is True
    assert limiter.take("a").allowed is False
    assert limiter.take("b").allowed is True


def test_rate_limiter_retry_after_is_at_least_one_second() -> None:
    clock = _Clock(0.0)
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
    limiter.take("a")

    clock.now = 59.99
    decision = limiter.take("a")
    assert decision.allowed is False
    assert decision.retry_after_seconds == 1


def test_idle_client_windows_are_forgotten() -> None:
    clock = _Clock(0.0)
    limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=60, clock=clock)
    for index in range(10_000):
        limiter.take(f"10.0.{index // 256}.{index % 256}")

    clock.now = 10_000.0
    assert limiter.take("10.9.9.9").allowed is True

    assert list(limiter._windows) == ["10.9.9.9"]  # pyright: ignore[reportPrivateUsage]


def test_sweep_keeps_windows_that_are_still_open() -> None:
    clock = _Clock(0.0)
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=10, clock=clock)
    limiter.take("a")
    clock.now = 5.0
    limiter.take("b")
    limiter.take("b")

    clock.now = 12.0
    limiter.take("c")

    assert sorted(limiter._windows) == ["b", "c"]  # pyright: ignore[reportPrivateUsage]
    assert limiter.take("b").allowed is False
