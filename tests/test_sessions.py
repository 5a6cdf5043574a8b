from __future__ import annotations

from datetime import timedelta

from agent_identity.repository import SESSIONS


def test_created_session_validates(services, make_agent, clock):
    agent = make_agent()
    session = services.sessions.create(agent, ip_address="10.0.0.1", user_agent="pytest")
    assert session.expires_at == clock() + timedelta(hours=24)
    assert session.account_id == agent.account_id

    clock.advance(minutes=5)
    validated = services.sessions.validate(session.token)
    assert validated is not None
    assert validated.id == session.id
    assert validated.last_activity_at == clock()
    assert validated.ip_address == "10.0.0.1"


def test_unknown_token_does_not_validate(services):
    assert services.sessions.validate("0" * 64) is None


def test_expired_session_is_removed_on_validation(services, repository, make_agent, clock):
    session = services.sessions.create(make_agent())
    clock.advance(hours=24, seconds=1)
    assert services.sessions.validate(session.token) is None
    assert repository.get_by_id(SESSIONS, session.id) is None


def test_session_valid_exactly_at_expiry(services, make_agent, clock):
    session = services.sessions.create(make_agent())
    clock.advance(hours=24)
    assert services.sessions.validate(session.token) is not None


def test_revoke_single_session(services, make_agent):
    session = services.sessions.create(make_agent())
    assert services.sessions.revoke(session.id) is True
    assert services.sessions.revoke(session.id) is False
    assert services.sessions.validate(session.token) is None


def test_revoke_all_keeps_excepted_session(services, make_agent):
    agent = make_agent()
    other = make_agent("grace@example.com")
    keep = services.sessions.create(agent)
    drop = [services.sessions.create(agent) for _ in range(2)]
    foreign = services.sessions.create(other)

    assert services.sessions.revoke_all(agent.id, except_session_id=keep.id) == 2
    assert services.sessions.validate(keep.token) is not None
    assert all(services.sessions.validate(session.token) is None for session in drop)
    assert services.sessions.validate(foreign.token) is not None


def test_revoke_all_without_sessions_is_noop(services, make_agent):
    assert services.sessions.revoke_all(make_agent().id) == 0


def test_list_for_agent_newest_first(services, make_agent, clock):
    agent = make_agent()
    first = services.sessions.create(agent)
    clock.advance(minutes=1)
    second = services.sessions.create(agent)
    assert [session.id for session in services.sessions.list_for_agent(agent.id)] == [
        second.id,
        first.id,
    ]
