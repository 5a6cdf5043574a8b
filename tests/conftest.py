from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Mapping

import pytest

from agent_identity.bootstrap import IdentityServices, build_services
from agent_identity.config import SecurityPolicy
from agent_identity.domain.contracts import CreateAgentInput
from agent_identity.domain.models import Agent, AgentRole
from agent_identity.errors import DuplicateRecordError, StorageError
from agent_identity.repository import (
    ACCOUNTS,
    AGENTS,
    COLLECTIONS,
    CUSTOM_ROLES,
    INVITATIONS,
    SESSIONS,
)
from agent_identity.security.credentials import CredentialHasher

UNIQUE_COLUMNS: dict[str, tuple[str, ...]] = {
    AGENTS: ("account_id", "email"),
    INVITATIONS: ("token",),
    SESSIONS: ("token",),
}


def _adapt(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class FakeRepository:
    """In-memory record store mimicking the Postgres repository contract."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in COLLECTIONS}
        self._failures: dict[str, Exception] = {}
        self.update_hooks: list[Callable[[str, str, Mapping[str, Any]], None]] = []

    def fail_on(self, operation: str, exc: Exception | None = None) -> None:
        """Make every later call to ``operation`` raise ``exc``."""
        self._failures[operation] = exc or StorageError("store unavailable")

    def recover(self) -> None:
        self._failures.clear()

    def _check(self, operation: str) -> None:
        if operation in self._failures:
            raise self._failures[operation]

    def _table(self, collection: str) -> dict[str, dict[str, Any]]:
        if collection not in COLLECTIONS:
            raise ValueError(f"unknown collection: {collection}")
        return self.tables[collection]

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        return all(row.get(column) == _adapt(value) for column, value in filters.items())

    def get_by_id(self, collection: str, record_id: str):
        self._check("get_by_id")
        row = self._table(collection).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    def get_many(self, collection, filters, *, limit=None, offset=None, order_by=None):
        self._check("get_many")
        rows = [row for row in self._table(collection).values() if self._matches(row, filters)]
        if order_by:
            column = order_by.lstrip("-")
            rows.sort(key=lambda row: row[column], reverse=order_by.startswith("-"))
        rows = rows[offset or 0 :]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def insert(self, collection: str, record: Mapping[str, Any]):
        self._check("insert")
        table = self._table(collection)
        row = {column: _adapt(value) for column, value in record.items()}
        unique = UNIQUE_COLUMNS.get(collection)
        if unique:
            key = tuple(row.get(column) for column in unique)
            for existing in table.values():
                if tuple(existing.get(column) for column in unique) == key:
                    raise DuplicateRecordError(f"duplicate {collection} {key}")
        table[row["id"]] = row
        return copy.deepcopy(row)

    def update(self, collection, record_id, changes, *, expected=None):
        self._check("update")
        for hook in list(self.update_hooks):
            hook(collection, record_id, changes)
        row = self._table(collection).get(record_id)
        if row is None:
            return None
        if expected and not self._matches(row, expected):
            return None
        row.update({column: _adapt(value) for column, value in changes.items()})
        return copy.deepcopy(row)

    def delete(self, collection: str, record_id: str) -> bool:
        self._check("delete")
        return self._table(collection).pop(record_id, None) is not None

    def count(self, collection, filters) -> int:
        self._check("count")
        return sum(1 for row in self._table(collection).values() if self._matches(row, filters))


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def repository() -> FakeRepository:
    repo = FakeRepository()
    for account_id, tenant_id in (
        ("acct-a", "tenant-1"),
        ("acct-b", "tenant-1"),
        ("acct-x", "tenant-2"),
    ):
        repo.insert(ACCOUNTS, {"id": account_id, "tenant_id": tenant_id, "name": account_id})
    return repo


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    # low cost factor keeps the suite fast
    return CredentialHasher(n=1024)


@pytest.fixture
def services(repository, clock, hasher) -> IdentityServices:
    return build_services(repository, SecurityPolicy(), clock=clock, hasher=hasher)


@pytest.fixture
def make_agent(services):
    """Factory creating agents directly in an account."""

    def factory(
        email: str = "ada@example.com",
        *,
        account_id: str = "acct-a",
        secret: str = "correct horse",
        role: AgentRole | str = AgentRole.agent,
        custom_role_id: str | None = None,
    ) -> Agent:
        return services.agents.create_direct(
            account_id,
            CreateAgentInput(
                email=email,
                secret=secret,
                display_name=email.split("@")[0].title(),
                role=role,
                custom_role_id=custom_role_id,
            ),
        )

    return factory


@pytest.fixture
def add_custom_role(repository):
    def factory(role_id: str, permissions, *, account_id: str = "acct-a", name: str = "Custom"):
        return repository.insert(
            CUSTOM_ROLES,
            {"id": role_id, "account_id": account_id, "name": name, "permissions": permissions},
        )

    return factory
