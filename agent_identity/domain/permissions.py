"""Effective permission resolution for agents.

Agents either carry one of the fixed roles, whose defaults are listed in
:data:`DEFAULT_ROLE_PERMISSIONS`, or reference an account-defined custom role
whose permission list replaces those defaults entirely.
"""

from __future__ import annotations

import logging
from typing import Final, Iterable, Mapping

from ..repository import CUSTOM_ROLES, Repository
from .models import Agent, AgentRole, CustomRole, role_value

logger = logging.getLogger(__name__)

WILDCARD: Final[str] = "*"

ALL_PERMISSIONS: Final[tuple[str, ...]] = (
    "conversations:view",
    "conversations:create",
    "conversations:assign",
    "conversations:manage",
    "conversations:delete",
    "messages:send",
    "messages:delete",
    "contacts:view",
    "contacts:create",
    "contacts:edit",
    "contacts:delete",
    "agents:view",
    "agents:create",
    "agents:edit",
    "agents:delete",
    "teams:view",
    "teams:manage",
    "inboxes:view",
    "inboxes:manage",
    "reports:view",
    "settings:view",
    "settings:edit",
    "webhooks:manage",
    "integrations:manage",
)

DEFAULT_ROLE_PERMISSIONS: Final[Mapping[str, tuple[str, ...]]] = {
    AgentRole.owner.value: (WILDCARD,),
    AgentRole.administrator.value: (
        "conversations:view",
        "conversations:create",
        "conversations:assign",
        "conversations:manage",
        "conversations:delete",
        "messages:send",
        "messages:delete",
        "contacts:view",
        "contacts:create",
        "contacts:edit",
        "contacts:delete",
        "agents:view",
        "agents:create",
        "agents:edit",
        "teams:view",
        "teams:manage",
        "inboxes:view",
        "inboxes:manage",
        "reports:view",
        "settings:view",
        "settings:edit",
        "webhooks:manage",
    ),
    AgentRole.agent.value: (
        "conversations:view",
        "conversations:create",
        "conversations:assign",
        "conversations:manage",
        "messages:send",
        "contacts:view",
        "contacts:create",
        "contacts:edit",
        "teams:view",
        "inboxes:view",
        "reports:view",
    ),
    AgentRole.viewer.value: (
        "conversations:view",
        "contacts:view",
        "teams:view",
        "inboxes:view",
        "reports:view",
    ),
}


def default_permissions(role: AgentRole | str) -> list[str]:
    """Return the fixed permission list for ``role``; unknown roles get none."""
    return list(DEFAULT_ROLE_PERMISSIONS.get(role_value(role), ()))


def has_permission(granted: Iterable[str], permission: str) -> bool:
    """Return ``True`` when ``granted`` includes ``permission`` or the wildcard."""
    granted = set(granted)
    return WILDCARD in granted or permission in granted


class PermissionResolver:
    """Map an agent to its ordered effective permission list."""

    def __init__(self, repository: Repository) -> None:
        self._repository = repository

    def custom_role(self, agent: Agent) -> CustomRole | None:
        """Load the agent's custom role when it exists within the agent's account."""
        if not agent.custom_role_id:
            return None
        row = self._repository.get_by_id(CUSTOM_ROLES, agent.custom_role_id)
        if row is None:
            logger.warning(
                "custom role %s referenced by agent %s not found; using role defaults",
                agent.custom_role_id,
                agent.id,
            )
            return None
        role = CustomRole.from_row(row)
        if role.account_id != agent.account_id:
            logger.warning(
                "custom role %s belongs to another account than agent %s; ignoring",
                role.id,
                agent.id,
            )
            return None
        return role

    def resolve(self, agent: Agent) -> list[str]:
        role = self.custom_role(agent)
        if role is not None:
            return list(role.permissions)
        return default_permissions(agent.role)
