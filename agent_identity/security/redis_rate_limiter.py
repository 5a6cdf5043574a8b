"""Redis-backed sliding window limiter shared across service replicas."""

from __future__ import annotations

import time
from typing import Callable, Final

from redis import Redis
from redis.exceptions import ResponseError


class RedisSlidingWindowRateLimiter:
    """Sliding window over a Redis sorted set, one member per attempt."""

    _ATTEMPT_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local seq_key = KEYS[2]
    local window_ms = tonumber(ARGV[1])
    local limit = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    if redis.call('ZCARD', key) >= limit then
        return 0
    end
    local seq = redis.call('INCR', seq_key)
    redis.call('ZADD', key, now_ms, now_ms .. ':' .. seq)
    redis.call('PEXPIRE', key, window_ms)
    redis.call('PEXPIRE', seq_key, window_ms)
    return 1
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "agent-identity:attempts",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._clock = clock
        self._script = client.register_script(self._ATTEMPT_SCRIPT)

    def _keys(self, key: str) -> tuple[str, str]:
        redis_key = f"{self._key_prefix}:{key}"
        return redis_key, f"{redis_key}:seq"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def allow(self, key: str) -> bool:
        """Record an attempt for ``key`` and return whether it fits the window."""
        redis_key, seq_key = self._keys(key)
        now_ms = self._now_ms()
        try:
            result = self._script(
                keys=[redis_key, seq_key], args=[self._window_ms, self._max_requests, now_ms]
            )
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message and "eval" in message:
                return self._allow_without_scripting(redis_key, seq_key, now_ms)
            raise
        return int(result) == 1

    def _allow_without_scripting(self, redis_key: str, seq_key: str, now_ms: int) -> bool:
        # not atomic; only used against servers with scripting disabled
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_requests:
            return False
        seq = self._client.incr(seq_key)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        self._client.pexpire(seq_key, self._window_ms)
        return True

    def remaining(self, key: str) -> int:
        redis_key, _ = self._keys(key)
        now_ms = self._now_ms()
        used = self._client.zcount(redis_key, now_ms - self._window_ms + 1, "+inf")
        return max(self._max_requests - int(used), 0)

    def reset(self, key: str) -> None:
        self._client.delete(*self._keys(key))
