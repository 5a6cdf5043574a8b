"""In-memory sliding window limiter for login and registration attempts."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, DefaultDict


class SlidingWindowRateLimiter:
    """Thread-safe per-key sliding window; one process only."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._attempts: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        attempts = self._attempts[key]
        while attempts and now - attempts[0] >= self._window:
            attempts.popleft()
        return attempts

    def allow(self, key: str) -> bool:
        """Record an attempt for ``key`` and return whether it fits the window."""
        now = self._clock()
        with self._lock:
            attempts = self._prune(key, now)
            if len(attempts) >= self._max_requests:
                return False
            attempts.append(now)
            return True

    def remaining(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            return max(self._max_requests - len(self._prune(key, now)), 0)

    def reset(self, key: str) -> None:
        """Forget recorded attempts, e.g. after a successful login."""
        with self._lock:
            self._attempts.pop(key, None)
