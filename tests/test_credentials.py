"""Tests for scrypt credential hashing and random token generation."""

from __future__ import annotations

import pytest

from agent_identity.security.credentials import CredentialHasher
from agent_identity.security.tokens import (
    INVITATION_TOKEN_PATTERN,
    SESSION_TOKEN_PATTERN,
    generate_invitation_token,
    generate_session_token,
)


def test_hash_record_has_hex_salt_and_key(hasher):
    record = hasher.hash("s3cret-pass")
    salt, key = record.split(":")
    assert len(salt) == 32
    assert len(key) == 128
    int(salt, 16)
    int(key, 16)


def test_hash_uses_fresh_salt_each_time(hasher):
    first = hasher.hash("same secret")
    second = hasher.hash("same secret")
    assert first != second
    assert hasher.verify("same secret", first)
    assert hasher.verify("same secret", second)


def test_verify_rejects_wrong_secret(hasher):
    record = hasher.hash("right one")
    assert not hasher.verify("wrong one", record)


@pytest.mark.parametrize(
    "record",
    ["", "no-separator", ":abcd", "salt:", "salt:not-hex", "salt:abcd"],
)
def test_verify_returns_false_for_malformed_records(hasher, record):
    assert hasher.verify("anything", record) is False


def test_verify_raises_when_record_missing(hasher):
    with pytest.raises(ValueError):
        hasher.verify("anything", None)


def test_hasher_with_different_cost_does_not_verify(hasher):
    record = hasher.hash("portable")
    assert not CredentialHasher(n=2048).verify("portable", record)


def test_generated_tokens_match_expected_shapes():
    invitation_tokens = {generate_invitation_token() for _ in range(50)}
    session_tokens = {generate_session_token() for _ in range(50)}
    assert len(invitation_tokens) == 50
    assert len(session_tokens) == 50
    assert all(INVITATION_TOKEN_PATTERN.match(token) for token in invitation_tokens)
    assert all(SESSION_TOKEN_PATTERN.match(token) for token in session_tokens)
