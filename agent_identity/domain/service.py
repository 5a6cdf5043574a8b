"""Agent directory orchestrating persistence, credentials, lockout and sessions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from .contracts import CreateAgentInput, ProfileUpdate, normalize_email
from .models import Account, Agent, AgentRole, AgentStatus, Availability, role_value, utcnow
from .permissions import PermissionResolver
from .sessions import SessionRegistry
from ..errors import (
    AccountInactiveError,
    AccountLockedError,
    AgentInactiveError,
    AgentNotFoundError,
    AlreadyExistsError,
    DuplicateRecordError,
    InvalidCredentialsError,
    StorageError,
)
from ..repository import ACCOUNTS, AGENTS, Repository
from ..security.credentials import CredentialHasher
from ..security.lockout import LockoutDecision, LockoutPolicy
from ..security.tokens import new_record_id

logger = logging.getLogger(__name__)


class AgentDirectory:
    """Agent workflows backed by the record store."""

    def __init__(
        self,
        repository: Repository,
        *,
        hasher: CredentialHasher | None = None,
        lockout: LockoutPolicy | None = None,
        sessions: SessionRegistry | None = None,
        permissions: PermissionResolver | None = None,
        clock: Callable[[], datetime] = utcnow,
        on_lock_error: Callable[[Exception], None] | None = None,
    ) -> None:
        """Store dependencies used to orchestrate agent persistence and security."""
        self._repository = repository
        self._hasher = hasher or CredentialHasher()
        self._lockout = lockout or LockoutPolicy()
        self._sessions = sessions or SessionRegistry(repository, clock=clock)
        self._permissions = permissions or PermissionResolver(repository)
        self._clock = clock
        self._on_lock_error = on_lock_error

    # -- lookups -----------------------------------------------------------

    def find(self, agent_id: str) -> Agent | None:
        row = self._repository.get_by_id(AGENTS, agent_id)
        return Agent.from_row(row) if row else None

    def find_account(self, account_id: str) -> Account | None:
        row = self._repository.get_by_id(ACCOUNTS, account_id)
        return Account.from_row(row) if row else None

    def get(self, agent_id: str) -> Agent:
        """Return the agent or raise :class:`AgentNotFoundError`."""
        agent = self.find(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def get_by_email(self, account_id: str, email: str) -> Agent | None:
        rows = self._repository.get_many(
            AGENTS, {"account_id": account_id, "email": normalize_email(email)}, limit=1
        )
        return Agent.from_row(rows[0]) if rows else None

    def list_agents(
        self,
        account_id: str,
        *,
        status: AgentStatus | None = None,
        role: AgentRole | str | None = None,
        availability: Availability | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Agent]:
        """List agents of an account, newest first, with optional filters."""
        filters: dict[str, Any] = {"account_id": account_id}
        if status is not None:
            filters["status"] = AgentStatus(status)
        if role is not None:
            filters["role"] = role_value(role)
        if availability is not None:
            filters["availability"] = Availability(availability)
        rows = self._repository.get_many(
            AGENTS, filters, limit=limit, offset=offset, order_by="-created_at"
        )
        return [Agent.from_row(row) for row in rows]

    def count_agents(self, account_id: str, status: AgentStatus | None = None) -> int:
        filters: dict[str, Any] = {"account_id": account_id}
        if status is not None:
            filters["status"] = AgentStatus(status)
        return self._repository.count(AGENTS, filters)

    # -- provisioning ------------------------------------------------------

    def create_direct(self, account_id: str, payload: CreateAgentInput) -> Agent:
        """Provision an active, offline agent in ``account_id``.

        Raises
        ------
        AlreadyExistsError
            When the email is already registered in the account, whether found
            up front or reported by the store's uniqueness constraint.
        """
        email = normalize_email(payload.email)
        if self.get_by_email(account_id, email) is not None:
            raise AlreadyExistsError(account_id, email)

        now = self._clock()
        record = {
            "id": new_record_id(),
            "account_id": account_id,
            "email": email,
            "credential_hash": self._hasher.hash(payload.secret),
            "display_name": payload.display_name,
            "avatar_ref": payload.avatar_ref,
            "role": role_value(payload.role),
            "custom_role_id": payload.custom_role_id,
            "availability": Availability.offline.value,
            "status": AgentStatus.active.value,
            "failed_login_count": 0,
            "locked_until": None,
            "last_activity_at": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            row = self._repository.insert(AGENTS, record)
        except DuplicateRecordError as exc:
            raise AlreadyExistsError(account_id, email) from exc

        agent = Agent.from_row(row)
        logger.info(
            "agent %s created in account %s with role %s",
            agent.id,
            account_id,
            role_value(agent.role),
        )
        return agent

    def update_profile(self, agent_id: str, update: ProfileUpdate) -> Agent:
        agent = self.get(agent_id)
        changes = {
            column: value
            for column, value in update.provided().items()
            if getattr(agent, column) != value
        }
        if not changes:
            return agent

        now = self._clock()
        changes["updated_at"] = now
        if "availability" in changes:
            changes["last_activity_at"] = now
        row = self._repository.update(AGENTS, agent_id, changes)
        if row is None:
            raise AgentNotFoundError(agent_id)
        logger.info("agent %s profile updated (%s)", agent_id, ", ".join(sorted(changes)))
        return Agent.from_row(row)

    def update_role(
        self, agent_id: str, role: AgentRole | str, custom_role_id: str | None = None
    ) -> Agent:
        row = self._repository.update(
            AGENTS,
            agent_id,
            {
                "role": role_value(role),
                "custom_role_id": custom_role_id,
                "updated_at": self._clock(),
            },
        )
        if row is None:
            raise AgentNotFoundError(agent_id)
        logger.info(
            "agent %s role set to %s (custom_role=%s)", agent_id, role_value(role), custom_role_id
        )
        return Agent.from_row(row)

    def deactivate(self, agent_id: str) -> None:
        """Flip the agent to inactive/offline, then revoke its sessions.

        The status write commits before revocation starts, so a concurrent
        reader never sees an active agent without sessions being revoked. A
        revocation failure propagates with the status change already applied.
        """
        row = self._repository.update(
            AGENTS,
            agent_id,
            {
                "status": AgentStatus.inactive.value,
                "availability": Availability.offline.value,
                "updated_at": self._clock(),
            },
        )
        if row is None:
            raise AgentNotFoundError(agent_id)
        self._sessions.revoke_all(agent_id)
        logger.info("agent %s deactivated", agent_id)

    def activate(self, agent_id: str) -> Agent:
        row = self._repository.update(
            AGENTS, agent_id, {"status": AgentStatus.active.value, "updated_at": self._clock()}
        )
        if row is None:
            raise AgentNotFoundError(agent_id)
        logger.info("agent %s activated", agent_id)
        return Agent.from_row(row)

    def delete(self, agent_id: str) -> None:
        """Hard-delete the agent; sessions are not cascaded."""
        if not self._repository.delete(AGENTS, agent_id):
            raise AgentNotFoundError(agent_id)
        logger.info("agent %s deleted", agent_id)

    # -- credentials -------------------------------------------------------

    def change_credential(
        self,
        agent_id: str,
        new_secret: str,
        revoke_other_sessions: bool = True,
        keep_session_id: str | None = None,
    ) -> None:
        """Rehash and store a new secret.

        With ``revoke_other_sessions`` every session goes, the caller's
        included, unless ``keep_session_id`` names one to preserve.
        """
        row = self._repository.update(
            AGENTS,
            agent_id,
            {"credential_hash": self._hasher.hash(new_secret), "updated_at": self._clock()},
        )
        if row is None:
            raise AgentNotFoundError(agent_id)
        if revoke_other_sessions:
            self._sessions.revoke_all(agent_id, except_session_id=keep_session_id)
        logger.info("agent %s credential changed", agent_id)

    def verify_credential(self, agent: Agent, secret: str) -> bool:
        return self._hasher.verify(secret, agent.credential_hash)

    # -- lockout -----------------------------------------------------------

    def check_locked(
        self,
        agent_id: str,
        on_error: Callable[[Exception], None] | None = None,
    ) -> bool:
        """Return whether the agent is currently locked out.

        A lapsed lock is cleared as a side effect. Storage failures fail open:
        the error is logged and handed to ``on_error`` and the agent is
        reported as not locked.
        """
        on_error = on_error or self._on_lock_error
        try:
            row = self._repository.get_by_id(AGENTS, agent_id)
            if row is None:
                return False
            locked_until = Agent.from_row(row).locked_until
            now = self._clock()
            if self._lockout.has_lapsed(locked_until, now):
                self._store_decision(agent_id, self._lockout.on_success_or_reset())
                logger.info("lockout for agent %s lapsed; counter reset", agent_id)
                return False
            return self._lockout.is_locked(locked_until, now)
        except StorageError as exc:
            logger.error("lock status check failed for agent %s; treating as unlocked: %s", agent_id, exc)
            if on_error is not None:
                on_error(exc)
            return False

    def record_failed_login(self, agent_id: str) -> LockoutDecision:
        """Increment the failed-attempt counter, locking at the policy threshold."""
        agent = self.get(agent_id)
        now = self._clock()
        current = agent.failed_login_count
        if self._lockout.has_lapsed(agent.locked_until, now):
            current = 0
        decision = self._lockout.on_failed_attempt(current, now)
        self._store_decision(agent_id, decision)
        if decision.locked:
            logger.warning(
                "agent %s locked until %s after %d failed attempts",
                agent_id,
                decision.locked_until.isoformat(),
                decision.attempts,
            )
        else:
            logger.warning("failed login for agent %s (attempt %d)", agent_id, decision.attempts)
        return decision

    def reset_failed_logins(self, agent_id: str) -> None:
        self._store_decision(agent_id, self._lockout.on_success_or_reset())

    def _store_decision(self, agent_id: str, decision: LockoutDecision) -> None:
        row = self._repository.update(
            AGENTS,
            agent_id,
            {
                "failed_login_count": decision.attempts,
                "locked_until": decision.locked_until,
                "updated_at": self._clock(),
            },
        )
        if row is None:
            raise AgentNotFoundError(agent_id)

    def authenticate(self, account_id: str, email: str, secret: str) -> Agent:
        """Run the login checks for an agent and return it on success.

        The account must exist and be active. Lock status is checked before
        the credential is verified; a wrong secret is recorded against the
        lockout counter and a correct one clears it.
        """
        account = self.find_account(account_id)
        if account is None:
            logger.warning("login failed: unknown account %s", account_id)
            raise InvalidCredentialsError()
        if not account.is_active:
            logger.warning("login refused: account %s is %s", account_id, account.status)
            raise AccountInactiveError(account_id)
        agent = self.get_by_email(account_id, email)
        if agent is None:
            logger.warning("login failed: unknown agent in account %s", account_id)
            raise InvalidCredentialsError()
        if self.check_locked(agent.id):
            raise AccountLockedError(agent.id, agent.locked_until)
        if not agent.is_active:
            raise AgentInactiveError(f"agent {agent.id} is {agent.status.value}")
        if not self.verify_credential(agent, secret):
            self.record_failed_login(agent.id)
            raise InvalidCredentialsError()
        self.reset_failed_logins(agent.id)
        return self.get(agent.id)

    # -- permissions -------------------------------------------------------

    def permissions_for(self, agent_id: str) -> list[str]:
        agent = self.find(agent_id)
        if agent is None:
            return []
        return self._permissions.resolve(agent)
