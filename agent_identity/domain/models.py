"""Domain records for agents, invitations, sessions and custom roles."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class AgentRole(str, Enum):
    owner = "owner"
    administrator = "administrator"
    agent = "agent"
    viewer = "viewer"


class Availability(str, Enum):
    online = "online"
    busy = "busy"
    offline = "offline"


class AgentStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"


class InvitationState(str, Enum):
    pending = "pending"
    used = "used"
    expired = "expired"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _coerce_role(value: Any) -> AgentRole | str:
    # unknown stored roles stay raw so permission resolution fails closed
    try:
        return AgentRole(value)
    except ValueError:
        return str(value)


def role_value(role: AgentRole | str) -> str:
    """Return the storage representation of a role."""
    return role.value if isinstance(role, AgentRole) else str(role)


@dataclass(slots=True)
class Agent:
    """Named operator bound to exactly one account."""

    id: str
    account_id: str
    email: str
    credential_hash: str
    display_name: str
    role: AgentRole | str
    availability: Availability
    status: AgentStatus
    created_at: datetime
    updated_at: datetime
    avatar_ref: str | None = None
    custom_role_id: str | None = None
    failed_login_count: int = 0
    locked_until: datetime | None = None
    last_activity_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Agent":
        """Build an agent from an ``agents`` row."""
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            email=row["email"],
            credential_hash=row["credential_hash"],
            display_name=row["display_name"],
            role=_coerce_role(row["role"]),
            availability=Availability(row["availability"]),
            status=AgentStatus(row["status"]),
            created_at=_as_datetime(row["created_at"]),
            updated_at=_as_datetime(row["updated_at"]),
            avatar_ref=row.get("avatar_ref"),
            custom_role_id=row.get("custom_role_id"),
            failed_login_count=row.get("failed_login_count") or 0,
            locked_until=_as_datetime(row.get("locked_until")),
            last_activity_at=_as_datetime(row.get("last_activity_at")),
        )

    @property
    def is_active(self) -> bool:
        return self.status is AgentStatus.active


@dataclass(slots=True)
class Invitation:
    """Single-use admission ticket binding a future agent to an account and role."""

    id: str
    account_id: str
    token: str
    role: AgentRole | str
    expires_at: datetime
    created_by: str
    created_at: datetime
    email: str | None = None
    custom_role_id: str | None = None
    used_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Invitation":
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            token=row["token"],
            role=_coerce_role(row["role"]),
            expires_at=_as_datetime(row["expires_at"]),
            created_by=row["created_by"],
            created_at=_as_datetime(row["created_at"]),
            email=row.get("email"),
            custom_role_id=row.get("custom_role_id"),
            used_at=_as_datetime(row.get("used_at")),
        )

    def state(self, now: datetime) -> InvitationState:
        """Classify the invitation at ``now``; a used invitation never reads as expired."""
        if self.used_at is not None:
            return InvitationState.used
        if self.expires_at < now:
            return InvitationState.expired
        return InvitationState.pending


@dataclass(slots=True)
class Session:
    """Live authenticated context bound to one agent."""

    id: str
    agent_id: str
    account_id: str
    token: str
    expires_at: datetime
    created_at: datetime
    last_activity_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Session":
        return cls(
            id=row["id"],
            agent_id=row["agent_id"],
            account_id=row["account_id"],
            token=row["token"],
            expires_at=_as_datetime(row["expires_at"]),
            created_at=_as_datetime(row["created_at"]),
            last_activity_at=_as_datetime(row["last_activity_at"]),
            ip_address=row.get("ip_address"),
            user_agent=row.get("user_agent"),
        )


@dataclass(slots=True)
class CustomRole:
    """Account-defined named permission set."""

    id: str
    account_id: str
    name: str
    permissions: list[str] = field(default_factory=list)
    description: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CustomRole":
        permissions = row.get("permissions") or []
        if isinstance(permissions, str):
            # legacy rows stored the list as JSON text
            permissions = json.loads(permissions)
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            name=row["name"],
            permissions=list(permissions),
            description=row.get("description"),
        )


@dataclass(slots=True)
class Account:
    """Read-only projection of a tenant-owned account."""

    id: str
    tenant_id: str
    name: str | None = None
    status: str = "active"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Account":
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row.get("name"),
            status=row.get("status") or "active",
        )

    @property
    def is_active(self) -> bool:
        return self.status == "active"
