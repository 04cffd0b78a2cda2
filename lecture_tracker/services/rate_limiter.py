from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from time import time


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int
    reset_after_seconds: int


@dataclass
class _ClientWindow:
    count: int
    reset_at: float


class SlidingWindowRateLimiter:
    """Per-client request gate.

    A client's window opens on its first request and lasts ``window_seconds``;
    once it elapses the next request starts a fresh window. Expired windows
    are swept at most once per window, so idle clients are forgotten. State
    is process local and best effort.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = Lock()
        self._windows: dict[str, _ClientWindow] = {}
        self._next_sweep_at = clock() + window_seconds

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def take(self, key: str) -> RateLimitDecision:
        now = self._clock()

        with self._lock:
            if now >= self._next_sweep_at:
                self._sweep_expired(now)
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = _ClientWindow(count=1, reset_at=now + self._window_seconds)
                self._windows[key] = window
                return RateLimitDecision(
                    allowed=True,
                    limit=self._max_requests,
                    remaining=max(self._max_requests - 1, 0),
                    retry_after_seconds=0,
                    reset_after_seconds=self._window_seconds,
                )

            window.count += 1
            reset_after_seconds = max(1, math.ceil(window.reset_at - now))
            if window.count > self._max_requests:
                return RateLimitDecision(
                    allowed=False,
                    limit=self._max_requests,
                    remaining=0,
                    retry_after_seconds=reset_after_seconds,
                    reset_after_seconds=reset_after_seconds,
                )

            return RateLimitDecision(
                allowed=True,
                limit=self._max_requests,
                remaining=max(self._max_requests - window.count, 0),
                retry_after_seconds=0,
                reset_after_seconds=reset_after_seconds,
            )

    def _sweep_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep_at = now + self._window_seconds
