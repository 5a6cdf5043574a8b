"""Session registry backing agent logins and trust-driven revocation."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from ..repository import SESSIONS, Repository
from ..security.tokens import generate_session_token, new_record_id
from .models import Agent, Session, utcnow

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Create, validate and revoke agent sessions.

    Revocation is a hard delete; an expired session is removed the first time
    it is presented rather than by a background sweep.
    """

    def __init__(
        self,
        repository: Repository,
        *,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
        token_factory: Callable[[], str] = generate_session_token,
    ) -> None:
        self._repository = repository
        self._ttl = ttl
        self._clock = clock
        self._token_factory = token_factory

    def create(
        self,
        agent: Agent,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        """Open a session for ``agent`` and return it with its raw token."""
        now = self._clock()
        row = self._repository.insert(
            SESSIONS,
            {
                "id": new_record_id(),
                "agent_id": agent.id,
                "account_id": agent.account_id,
                "token": self._token_factory(),
                "ip_address": ip_address,
                "user_agent": user_agent,
                "expires_at": now + self._ttl,
                "created_at": now,
                "last_activity_at": now,
            },
        )
        session = Session.from_row(row)
        logger.info("session %s opened for agent %s", session.id, agent.id)
        return session

    def validate(self, token: str) -> Session | None:
        """Return the live session for ``token``, or ``None`` when unknown or expired."""
        rows = self._repository.get_many(SESSIONS, {"token": token}, limit=1)
        if not rows:
            return None
        session = Session.from_row(rows[0])
        now = self._clock()
        if session.expires_at < now:
            self._repository.delete(SESSIONS, session.id)
            logger.info("expired session %s removed", session.id)
            return None
        row = self._repository.update(SESSIONS, session.id, {"last_activity_at": now})
        return Session.from_row(row) if row else None

    def list_for_agent(self, agent_id: str) -> list[Session]:
        rows = self._repository.get_many(SESSIONS, {"agent_id": agent_id}, order_by="-created_at")
        return [Session.from_row(row) for row in rows]

    def revoke(self, session_id: str) -> bool:
        """Delete a single session; returns ``False`` when it was already gone."""
        deleted = self._repository.delete(SESSIONS, session_id)
        if deleted:
            logger.info("session %s revoked", session_id)
        return deleted

    def revoke_all(self, agent_id: str, except_session_id: str | None = None) -> int:
        """Delete every session of ``agent_id`` except ``except_session_id``.

        Returns the number of sessions removed; an agent without sessions is
        not an error.
        """
        revoked = 0
        for row in self._repository.get_many(SESSIONS, {"agent_id": agent_id}):
            if except_session_id is not None and row["id"] == except_session_id:
                continue
            if self._repository.delete(SESSIONS, row["id"]):
                revoked += 1
        logger.info(
            "revoked %d session(s) for agent %s (kept=%s)", revoked, agent_id, except_session_id
        )
        return revoked
