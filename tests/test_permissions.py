from __future__ import annotations

import json

from agent_identity.domain.models import AgentRole
from agent_identity.domain.permissions import (
    ALL_PERMISSIONS,
    DEFAULT_ROLE_PERMISSIONS,
    default_permissions,
    has_permission,
)
from agent_identity.repository import AGENTS


def test_owner_holds_wildcard(services, make_agent):
    owner = make_agent("owner@example.com", role=AgentRole.owner)
    assert services.permissions.resolve(owner) == ["*"]
    assert has_permission(["*"], "agents:delete")


def test_fixed_roles_resolve_to_defaults(services, make_agent):
    for role in (AgentRole.administrator, AgentRole.agent, AgentRole.viewer):
        agent = make_agent(f"{role.value}@example.com", role=role)
        assert services.permissions.resolve(agent) == list(DEFAULT_ROLE_PERMISSIONS[role.value])


def test_default_role_permissions_are_known_permissions():
    for role, permissions in DEFAULT_ROLE_PERMISSIONS.items():
        if role == AgentRole.owner.value:
            continue
        assert set(permissions) <= set(ALL_PERMISSIONS)


def test_viewer_cannot_send_messages():
    assert not has_permission(default_permissions(AgentRole.viewer), "messages:send")
    assert has_permission(default_permissions(AgentRole.agent), "messages:send")


def test_custom_role_replaces_defaults(services, make_agent, add_custom_role):
    add_custom_role("role-triage", ["conversations:view", "conversations:assign"])
    agent = make_agent("triage@example.com", role=AgentRole.administrator, custom_role_id="role-triage")
    assert services.permissions.resolve(agent) == ["conversations:view", "conversations:assign"]


def test_custom_role_permissions_stored_as_json_text(services, make_agent, add_custom_role):
    add_custom_role("role-json", json.dumps(["reports:view"]))
    agent = make_agent("json@example.com", custom_role_id="role-json")
    assert services.permissions.resolve(agent) == ["reports:view"]


def test_missing_custom_role_falls_back_to_role_defaults(services, make_agent):
    agent = make_agent("ghost@example.com", role=AgentRole.viewer, custom_role_id="role-gone")
    assert services.permissions.resolve(agent) == list(DEFAULT_ROLE_PERMISSIONS["viewer"])


def test_custom_role_from_other_account_is_ignored(services, make_agent, add_custom_role):
    add_custom_role("role-foreign", ["*"], account_id="acct-b")
    agent = make_agent("sneaky@example.com", role=AgentRole.viewer, custom_role_id="role-foreign")
    assert services.permissions.resolve(agent) == list(DEFAULT_ROLE_PERMISSIONS["viewer"])


def test_unknown_stored_role_resolves_to_nothing(services, repository, make_agent):
    agent = make_agent("legacy@example.com")
    repository.update(AGENTS, agent.id, {"role": "supervisor"})
    reloaded = services.agents.get(agent.id)
    assert reloaded.role == "supervisor"
    assert services.permissions.resolve(reloaded) == []


def test_permissions_for_unknown_agent_is_empty(services):
    assert services.agents.permissions_for("missing") == []
