"""Brute-force lockout decisions over an agent's failed-attempt counter."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True)
class LockoutDecision:
    """New counter state to persist after an authentication outcome."""

    attempts: int
    locked_until: datetime | None = None

    @property
    def locked(self) -> bool:
        return self.locked_until is not None


class LockoutPolicy:
    """Pure lockout rules; persistence is left to the caller.

    Expiry is lazy: nothing sweeps stale locks, so callers must consult
    :meth:`has_lapsed` on read and clear the counter themselves.
    """

    def __init__(self, threshold: int = 5, duration: timedelta = timedelta(minutes=15)) -> None:
        if threshold < 1:
            raise ValueError("lockout threshold must be at least 1")
        self.threshold = threshold
        self.duration = duration

    def is_locked(self, locked_until: datetime | None, now: datetime) -> bool:
        """Return ``True`` while a lock is set and still in the future."""
        return locked_until is not None and locked_until > now

    def has_lapsed(self, locked_until: datetime | None, now: datetime) -> bool:
        """Return ``True`` when a lock is recorded but has already expired."""
        return locked_until is not None and locked_until <= now

    def on_failed_attempt(self, failed_login_count: int, now: datetime) -> LockoutDecision:
        attempts = failed_login_count + 1
        if attempts >= self.threshold:
            return LockoutDecision(attempts=attempts, locked_until=now + self.duration)
        return LockoutDecision(attempts=attempts)

    def on_success_or_reset(self) -> LockoutDecision:
        return LockoutDecision(attempts=0)
