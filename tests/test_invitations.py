"""Invitation issue, validation and consumption."""

from __future__ import annotations

from datetime import timedelta

import pytest

from agent_identity.domain.contracts import InvitationInput, RegistrationInput
from agent_identity.domain.invitations import InvitationErrorCode
from agent_identity.domain.models import AgentRole, AgentStatus, Availability, InvitationState
from agent_identity.errors import (
    AccountNotFoundError,
    AlreadyExistsError,
    CrossTenantViolation,
    InvitationAlreadyUsedError,
    InvitationExpiredError,
    InvitationNotFoundError,
)
from agent_identity.repository import AGENTS, INVITATIONS
from agent_identity.security.tokens import INVITATION_TOKEN_PATTERN


def _registration(email: str = "new@example.com") -> RegistrationInput:
    return RegistrationInput(email=email, secret="brand-new-secret", display_name="Newcomer")


@pytest.fixture
def inviter(make_agent):
    return make_agent("owner@example.com", role=AgentRole.owner)


def test_tokens_are_unique_and_expire_after_48_hours(services, inviter, clock):
    invitations = [
        services.invitations.create("acct-a", InvitationInput(), inviter.id) for _ in range(25)
    ]
    tokens = {invitation.token for invitation in invitations}
    assert len(tokens) == 25
    for invitation in invitations:
        assert INVITATION_TOKEN_PATTERN.match(invitation.token)
        assert invitation.expires_at - invitation.created_at == timedelta(hours=48)
        assert invitation.created_at == clock()
        assert invitation.used_at is None


def test_create_normalizes_addressee_email(services, inviter):
    invitation = services.invitations.create(
        "acct-a", InvitationInput(email="  Someone@Example.COM "), inviter.id
    )
    assert invitation.email == "someone@example.com"


def test_create_rejects_cross_tenant_account_without_writing(services, repository, inviter):
    with pytest.raises(CrossTenantViolation) as excinfo:
        services.invitations.create(
            "acct-x", InvitationInput(role=AgentRole.administrator), inviter.id, "tenant-1"
        )
    assert excinfo.value.account_id == "acct-x"
    assert excinfo.value.code == "CROSS_TENANT_VIOLATION"
    assert repository.count(INVITATIONS, {}) == 0


def test_create_allows_other_account_in_same_tenant(services, inviter):
    invitation = services.invitations.create("acct-b", InvitationInput(), inviter.id, "tenant-1")
    assert invitation.account_id == "acct-b"


def test_create_with_unknown_account_and_tenant_check_fails(services, inviter):
    with pytest.raises(AccountNotFoundError):
        services.invitations.create("acct-missing", InvitationInput(), inviter.id, "tenant-1")


def test_validate_reports_not_found(services):
    result = services.invitations.validate("00000000-0000-4000-8000-000000000000")
    assert not result.valid
    assert result.error is InvitationErrorCode.not_found
    with pytest.raises(InvitationNotFoundError):
        result.raise_for_error()


def test_validate_reports_used_before_expired(services, inviter, clock):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    services.invitations.mark_used(invitation.id)
    clock.advance(hours=72)
    result = services.invitations.validate(invitation.token)
    assert result.error is InvitationErrorCode.already_used


def test_validate_reports_expired(services, inviter, clock):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    clock.advance(hours=48)
    assert services.invitations.validate(invitation.token).valid
    clock.advance(seconds=1)
    result = services.invitations.validate(invitation.token)
    assert result.error is InvitationErrorCode.expired
    with pytest.raises(InvitationExpiredError):
        result.raise_for_error()


def test_registration_binds_invitation_role_and_account(services, inviter):
    invitation = services.invitations.create(
        "acct-b", InvitationInput(role=AgentRole.viewer), inviter.id
    )
    agent = services.invitations.complete_registration(invitation.token, _registration())

    assert agent.role is AgentRole.viewer
    assert agent.account_id == "acct-b"
    assert agent.status is AgentStatus.active
    assert agent.availability is Availability.offline
    assert services.agents.verify_credential(agent, "brand-new-secret")
    assert services.invitations.get(invitation.id).used_at is not None


def test_registration_carries_custom_role(services, inviter, add_custom_role):
    add_custom_role("role-support", ["conversations:view"])
    invitation = services.invitations.create(
        "acct-a", InvitationInput(role=AgentRole.agent, custom_role_id="role-support"), inviter.id
    )
    agent = services.invitations.complete_registration(invitation.token, _registration())
    assert agent.custom_role_id == "role-support"
    assert services.agents.permissions_for(agent.id) == ["conversations:view"]


def test_invitation_is_single_use(services, inviter):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    services.invitations.complete_registration(invitation.token, _registration("first@example.com"))
    with pytest.raises(InvitationAlreadyUsedError):
        services.invitations.complete_registration(
            invitation.token, _registration("second@example.com")
        )


def test_expired_invitation_cannot_register(services, repository, inviter, clock):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    clock.advance(hours=49)
    with pytest.raises(InvitationExpiredError):
        services.invitations.complete_registration(invitation.token, _registration())
    assert repository.count(AGENTS, {"account_id": "acct-a"}) == 1


def test_registration_with_existing_email_leaves_invitation_unused(services, inviter):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    with pytest.raises(AlreadyExistsError):
        services.invitations.complete_registration(
            invitation.token, _registration("Owner@Example.com")
        )
    assert services.invitations.validate(invitation.token).valid


def test_concurrent_consumption_rolls_back_new_agent(services, repository, inviter, clock):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)

    def consume_first(collection, record_id, changes):
        # another registration wins the race just before our conditional write
        if collection == INVITATIONS and record_id == invitation.id:
            repository.tables[INVITATIONS][record_id]["used_at"] = clock()
            repository.update_hooks.remove(consume_first)

    repository.update_hooks.append(consume_first)
    with pytest.raises(InvitationAlreadyUsedError):
        services.invitations.complete_registration(invitation.token, _registration())

    assert services.agents.get_by_email("acct-a", "new@example.com") is None


def test_mark_used_is_compare_and_swap(services, inviter, clock):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    first = services.invitations.mark_used(invitation.id)
    clock.advance(minutes=1)
    with pytest.raises(InvitationAlreadyUsedError):
        services.invitations.mark_used(invitation.id)
    assert services.invitations.get(invitation.id).used_at == first.used_at


def test_mark_used_unknown_invitation(services):
    with pytest.raises(InvitationNotFoundError):
        services.invitations.mark_used("missing")


def test_list_for_account_filters_by_state(services, inviter, clock):
    used = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    services.invitations.mark_used(used.id)
    clock.advance(hours=1)
    stale = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    clock.advance(hours=47, minutes=30)
    fresh = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    services.invitations.create("acct-b", InvitationInput(), inviter.id)
    clock.advance(hours=1)

    listed = services.invitations.list_for_account("acct-a")
    assert [invitation.id for invitation in listed] == [fresh.id, stale.id, used.id]
    assert [i.id for i in services.invitations.list_for_account("acct-a", InvitationState.used)] == [used.id]
    assert [i.id for i in services.invitations.list_for_account("acct-a", "expired")] == [stale.id]
    assert [i.id for i in services.invitations.list_for_account("acct-a", "pending")] == [fresh.id]


def test_delete_invitation(services, inviter):
    invitation = services.invitations.create("acct-a", InvitationInput(), inviter.id)
    services.invitations.delete(invitation.id)
    assert services.invitations.get_by_token(invitation.token) is None
    with pytest.raises(InvitationNotFoundError):
        services.invitations.delete(invitation.id)
