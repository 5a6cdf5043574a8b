"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

from .models import AgentRole, Availability


class _Unset:
    """Marker for fields a partial update leaves untouched."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final[Any] = _Unset()


def normalize_email(email: str) -> str:
    """Return the canonical form used for per-account email uniqueness."""
    return email.strip().lower()


@dataclass(slots=True)
class CreateAgentInput:
    """Validated inputs required to provision an agent inside an account."""

    email: str
    secret: str
    display_name: str
    role: AgentRole | str = AgentRole.agent
    custom_role_id: str | None = None
    avatar_ref: str | None = None


@dataclass(slots=True)
class InvitationInput:
    """Role binding and optional addressee for a new invitation."""

    role: AgentRole | str = AgentRole.agent
    email: str | None = None
    custom_role_id: str | None = None


@dataclass(slots=True)
class RegistrationInput:
    """Payload supplied by an invitee; it never carries role or account."""

    email: str
    secret: str
    display_name: str
    avatar_ref: str | None = None


@dataclass(slots=True)
class ProfileUpdate:
    """Partial profile update; fields left as ``UNSET`` are not written."""

    display_name: Any = UNSET
    avatar_ref: Any = UNSET
    availability: Any = UNSET

    def provided(self) -> dict[str, Any]:
        """Return the supplied fields keyed by column name."""
        values = {
            "display_name": self.display_name,
            "avatar_ref": self.avatar_ref,
            "availability": self.availability,
        }
        provided = {key: value for key, value in values.items() if value is not UNSET}
        if "availability" in provided:
            provided["availability"] = Availability(provided["availability"])
        return provided
