"""Typed failures raised by the agent identity core."""

from __future__ import annotations

from datetime import datetime


class AgentIdentityError(Exception):
    """Base class for every failure surfaced by the identity core.

    Each subclass carries a stable ``code`` so transports can map failures
    without parsing messages.
    """

    code = "AGENT_IDENTITY_ERROR"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class StorageError(AgentIdentityError):
    """Raised by repositories when the backing store fails."""

    code = "STORAGE_ERROR"


class DuplicateRecordError(StorageError):
    """Raised by repositories when an insert violates a uniqueness constraint."""

    code = "DUPLICATE_RECORD"


class NotFoundError(AgentIdentityError):
    code = "NOT_FOUND"

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"{self.code.lower()}: {identifier}")


class AgentNotFoundError(NotFoundError):
    code = "AGENT_NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    code = "ACCOUNT_NOT_FOUND"


class AlreadyExistsError(AgentIdentityError):
    """Raised when an agent email is already registered within the account."""

    code = "EMAIL_ALREADY_EXISTS"

    def __init__(self, account_id: str, email: str) -> None:
        self.account_id = account_id
        self.email = email
        super().__init__(f"email already registered in account {account_id}")


class InvitationError(AgentIdentityError):
    code = "INVITATION_INVALID"


class InvitationNotFoundError(InvitationError):
    code = "INVITATION_NOT_FOUND"


class InvitationAlreadyUsedError(InvitationError):
    code = "INVITATION_ALREADY_USED"


class InvitationExpiredError(InvitationError):
    code = "INVITATION_EXPIRED"


class CrossTenantViolation(AgentIdentityError):
    """Raised when an operation targets an account outside the caller's tenant."""

    code = "CROSS_TENANT_VIOLATION"

    def __init__(self, account_id: str, session_tenant_id: str) -> None:
        self.account_id = account_id
        self.session_tenant_id = session_tenant_id
        super().__init__(f"account {account_id} is outside tenant {session_tenant_id}")


class AccountLockedError(AgentIdentityError):
    code = "ACCOUNT_LOCKED"

    def __init__(self, agent_id: str, locked_until: datetime | None = None) -> None:
        self.agent_id = agent_id
        self.locked_until = locked_until
        super().__init__("account temporarily locked")


class InvalidCredentialsError(AgentIdentityError):
    code = "INVALID_CREDENTIALS"


class AgentInactiveError(AgentIdentityError):
    code = "AGENT_INACTIVE"


class AccountInactiveError(AgentIdentityError):
    """Raised when the agent's account has been disabled."""

    code = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(f"account {account_id} is not active")
