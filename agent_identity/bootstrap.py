"""Construct the identity services once per process."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .config import SecurityPolicy
from .domain.invitations import InvitationLifecycle
from .domain.models import utcnow
from .domain.permissions import PermissionResolver
from .domain.service import AgentDirectory
from .domain.sessions import SessionRegistry
from .repository import Repository
from .security.credentials import CredentialHasher
from .security.lockout import LockoutPolicy


@dataclass(slots=True)
class IdentityServices:
    """Service values shared by the HTTP layer."""

    agents: AgentDirectory
    invitations: InvitationLifecycle
    sessions: SessionRegistry
    permissions: PermissionResolver


def build_services(
    repository: Repository,
    policy: SecurityPolicy | None = None,
    *,
    clock: Callable[[], datetime] = utcnow,
    hasher: CredentialHasher | None = None,
    on_lock_error: Callable[[Exception], None] | None = None,
) -> IdentityServices:
    """Wire every service around ``repository`` using ``policy`` constants."""
    policy = policy or SecurityPolicy()
    sessions = SessionRegistry(repository, ttl=policy.session_ttl, clock=clock)
    permissions = PermissionResolver(repository)
    agents = AgentDirectory(
        repository,
        hasher=hasher or CredentialHasher(n=policy.scrypt_n),
        lockout=LockoutPolicy(policy.lockout_threshold, policy.lockout_duration),
        sessions=sessions,
        permissions=permissions,
        clock=clock,
        on_lock_error=on_lock_error,
    )
    invitations = InvitationLifecycle(
        repository, agents, ttl=policy.invitation_ttl, clock=clock
    )
    return IdentityServices(
        agents=agents,
        invitations=invitations,
        sessions=sessions,
        permissions=permissions,
    )
