"""Prometheus counters for authentication and tenant-isolation events."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "agent_identity_login_attempts_total",
    "Login attempts by outcome.",
    ["outcome"],
)

RATE_LIMITED = Counter(
    "agent_identity_rate_limited_total",
    "Requests rejected by the attempt limiter.",
    ["endpoint"],
)

CROSS_TENANT_VIOLATIONS = Counter(
    "agent_identity_cross_tenant_violations_total",
    "Invitation attempts blocked because the target account is in another tenant.",
)

LOCK_CHECK_FAILURES = Counter(
    "agent_identity_lock_check_failures_total",
    "Lock status checks that failed open because storage was unavailable.",
)

SESSIONS_REVOKED = Counter(
    "agent_identity_sessions_revoked_total",
    "Sessions ended by an explicit logout.",
)
