"""Invitation lifecycle: issue, validate and consume single-use admission tickets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from .contracts import CreateAgentInput, InvitationInput, RegistrationInput, normalize_email
from .models import Account, Agent, Invitation, InvitationState, role_value, utcnow
from .service import AgentDirectory
from ..errors import (
    AccountNotFoundError,
    CrossTenantViolation,
    InvitationAlreadyUsedError,
    InvitationError,
    InvitationExpiredError,
    InvitationNotFoundError,
)
from ..repository import ACCOUNTS, INVITATIONS, Repository
from ..security.tokens import generate_invitation_token, new_record_id

logger = logging.getLogger(__name__)


class InvitationErrorCode(str, Enum):
    not_found = "INVITATION_NOT_FOUND"
    already_used = "INVITATION_ALREADY_USED"
    expired = "INVITATION_EXPIRED"


_ERRORS: dict[InvitationErrorCode, type[InvitationError]] = {
    InvitationErrorCode.not_found: InvitationNotFoundError,
    InvitationErrorCode.already_used: InvitationAlreadyUsedError,
    InvitationErrorCode.expired: InvitationExpiredError,
}


@dataclass(slots=True)
class InvitationValidation:
    """Outcome of checking an invitation token; inspected rather than raised."""

    valid: bool
    invitation: Invitation | None = None
    error: InvitationErrorCode | None = None

    def raise_for_error(self) -> Invitation:
        """Return the invitation, or raise the exception matching ``error``."""
        if self.valid and self.invitation is not None:
            return self.invitation
        raise _ERRORS[self.error](self.error.value)


class InvitationLifecycle:
    """Issue and consume invitations for one record store.

    Parameters
    ----------
    repository:
        Record store holding ``agent_invitations`` and ``accounts``.
    directory:
        Agent directory used to provision the invitee.
    ttl:
        Lifetime fixed at creation; never extended afterwards.
    """

    def __init__(
        self,
        repository: Repository,
        directory: AgentDirectory,
        *,
        ttl: timedelta = timedelta(hours=48),
        clock: Callable[[], datetime] = utcnow,
        token_factory: Callable[[], str] = generate_invitation_token,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._ttl = ttl
        self._clock = clock
        self._token_factory = token_factory

    def tenant_of(self, account_id: str) -> str:
        """Return the tenant owning ``account_id``."""
        row = self._repository.get_by_id(ACCOUNTS, account_id)
        if row is None:
            raise AccountNotFoundError(account_id)
        return Account.from_row(row).tenant_id

    def create(
        self,
        account_id: str,
        payload: InvitationInput,
        created_by: str,
        session_tenant_id: str | None = None,
    ) -> Invitation:
        """Persist a new invitation and return it with its raw token.

        When ``session_tenant_id`` is supplied the target account must belong
        to that tenant; otherwise :class:`CrossTenantViolation` is raised and
        nothing is written.
        """
        if session_tenant_id is not None:
            account_tenant = self.tenant_of(account_id)
            if account_tenant != session_tenant_id:
                logger.warning(
                    "cross-tenant invitation blocked: agent %s (tenant %s) targeted account %s (tenant %s)",
                    created_by,
                    session_tenant_id,
                    account_id,
                    account_tenant,
                )
                raise CrossTenantViolation(account_id, session_tenant_id)

        now = self._clock()
        row = self._repository.insert(
            INVITATIONS,
            {
                "id": new_record_id(),
                "account_id": account_id,
                "email": normalize_email(payload.email) if payload.email else None,
                "token": self._token_factory(),
                "role": role_value(payload.role),
                "custom_role_id": payload.custom_role_id,
                "expires_at": now + self._ttl,
                "used_at": None,
                "created_by": created_by,
                "created_at": now,
            },
        )
        invitation = Invitation.from_row(row)
        logger.info(
            "invitation %s created for account %s with role %s by %s",
            invitation.id,
            account_id,
            role_value(invitation.role),
            created_by,
        )
        return invitation

    def get_by_token(self, token: str) -> Invitation | None:
        rows = self._repository.get_many(INVITATIONS, {"token": token}, limit=1)
        return Invitation.from_row(rows[0]) if rows else None

    def validate(self, token: str) -> InvitationValidation:
        """Check a token: not found, then already used, then expired."""
        invitation = self.get_by_token(token)
        if invitation is None:
            return InvitationValidation(valid=False, error=InvitationErrorCode.not_found)
        state = invitation.state(self._clock())
        if state is InvitationState.used:
            return InvitationValidation(
                valid=False, invitation=invitation, error=InvitationErrorCode.already_used
            )
        if state is InvitationState.expired:
            return InvitationValidation(
                valid=False, invitation=invitation, error=InvitationErrorCode.expired
            )
        return InvitationValidation(valid=True, invitation=invitation)

    def mark_used(self, invitation_id: str) -> Invitation:
        """Stamp ``used_at`` only if the invitation is still unused."""
        row = self._repository.update(
            INVITATIONS,
            invitation_id,
            {"used_at": self._clock()},
            expected={"used_at": None},
        )
        if row is None:
            if self._repository.get_by_id(INVITATIONS, invitation_id) is None:
                raise InvitationNotFoundError(invitation_id)
            raise InvitationAlreadyUsedError(invitation_id)
        return Invitation.from_row(row)

    def complete_registration(self, token: str, payload: RegistrationInput) -> Agent:
        """Create the invitee's agent and consume the invitation.

        Account, role and custom role come from the invitation only. If a
        concurrent registration consumes the token first, the agent created
        here is removed again and :class:`InvitationAlreadyUsedError` raised.
        """
        invitation = self.validate(token).raise_for_error()
        agent = self._directory.create_direct(
            invitation.account_id,
            CreateAgentInput(
                email=payload.email,
                secret=payload.secret,
                display_name=payload.display_name,
                role=invitation.role,
                custom_role_id=invitation.custom_role_id,
                avatar_ref=payload.avatar_ref,
            ),
        )
        try:
            self.mark_used(invitation.id)
        except InvitationError:
            logger.warning(
                "invitation %s consumed concurrently; rolling back agent %s",
                invitation.id,
                agent.id,
            )
            self._directory.delete(agent.id)
            raise
        logger.info(
            "agent %s registered in account %s via invitation %s",
            agent.id,
            invitation.account_id,
            invitation.id,
        )
        return agent

    def list_for_account(
        self, account_id: str, state: InvitationState | None = None
    ) -> list[Invitation]:
        """List an account's invitations newest first, optionally by state."""
        rows = self._repository.get_many(
            INVITATIONS, {"account_id": account_id}, order_by="-created_at"
        )
        invitations = [Invitation.from_row(row) for row in rows]
        if state is None:
            return invitations
        now = self._clock()
        wanted = InvitationState(state)
        return [invitation for invitation in invitations if invitation.state(now) is wanted]

    def get(self, invitation_id: str) -> Invitation:
        row = self._repository.get_by_id(INVITATIONS, invitation_id)
        if row is None:
            raise InvitationNotFoundError(invitation_id)
        return Invitation.from_row(row)

    def delete(self, invitation_id: str) -> None:
        if not self._repository.delete(INVITATIONS, invitation_id):
            raise InvitationNotFoundError(invitation_id)
        logger.info("invitation %s deleted", invitation_id)
