"""Record store contract and its Postgres implementation."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Final, Iterator, Mapping, Protocol

import psycopg
from psycopg import sql
from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .errors import DuplicateRecordError, StorageError

AGENTS: Final[str] = "agents"
INVITATIONS: Final[str] = "agent_invitations"
SESSIONS: Final[str] = "agent_sessions"
CUSTOM_ROLES: Final[str] = "custom_roles"
ACCOUNTS: Final[str] = "accounts"

COLLECTIONS: Final[frozenset[str]] = frozenset(
    {AGENTS, INVITATIONS, SESSIONS, CUSTOM_ROLES, ACCOUNTS}
)


class Repository(Protocol):
    """Narrow record-store contract consumed by the identity services.

    Records are plain mappings keyed by snake_case column name. Filters are
    equality matches where a ``None`` value matches NULL. Implementations raise
    :class:`~agent_identity.errors.DuplicateRecordError` on uniqueness
    violations and :class:`~agent_identity.errors.StorageError` on any other
    backend failure.
    """

    def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        ...

    def get_many(
        self,
        collection: str,
        filters: Mapping[str, Any],
        *,
        limit: int | None = None,
        offset: int | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        ...

    def insert(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        ...

    def update(
        self,
        collection: str,
        record_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Apply ``changes`` and return the new record.

        When ``expected`` is given the write only happens if the stored record
        still matches it; ``None`` is returned when no row was updated.
        """
        ...

    def delete(self, collection: str, record_id: str) -> bool:
        ...

    def count(self, collection: str, filters: Mapping[str, Any]) -> int:
        ...


def _adapt(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, dict)):
        return Json(value)
    return value


def _split_order(order_by: str) -> tuple[str, bool]:
    if order_by.startswith("-"):
        return order_by[1:], True
    return order_by, False


class PostgresRepository:
    """Postgres-backed record store shared by all identity collections."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    @contextmanager
    def _cursor(self) -> Iterator[tuple[psycopg.Connection, psycopg.Cursor]]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    yield conn, cur
        except UniqueViolation as exc:
            raise DuplicateRecordError(str(exc)) from exc
        except psycopg.Error as exc:
            raise StorageError(str(exc)) from exc

    def _table(self, collection: str) -> sql.Identifier:
        if collection not in COLLECTIONS:
            raise ValueError(f"unknown collection: {collection}")
        return sql.Identifier(collection)

    def _where(self, filters: Mapping[str, Any]) -> tuple[sql.Composable, list[Any]]:
        clauses: list[sql.Composable] = []
        params: list[Any] = []
        for column, value in filters.items():
            if value is None:
                clauses.append(sql.SQL("{} IS NULL").format(sql.Identifier(column)))
            else:
                clauses.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
                params.append(_adapt(value))
        if not clauses:
            return sql.SQL("TRUE"), params
        return sql.SQL(" AND ").join(clauses), params

    def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        query = sql.SQL("SELECT * FROM {} WHERE id = %s").format(self._table(collection))
        with self._cursor() as (_, cur):
            cur.execute(query, (record_id,))
            return cur.fetchone()

    def get_many(
        self,
        collection: str,
        filters: Mapping[str, Any],
        *,
        limit: int | None = None,
        offset: int | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        where_sql, params = self._where(filters)
        query = sql.SQL("SELECT * FROM {} WHERE {}").format(self._table(collection), where_sql)
        if order_by:
            column, descending = _split_order(order_by)
            query += sql.SQL(" ORDER BY {} {}").format(
                sql.Identifier(column), sql.SQL("DESC" if descending else "ASC")
            )
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        if offset:
            query += sql.SQL(" OFFSET %s")
            params.append(offset)
        with self._cursor() as (_, cur):
            cur.execute(query, params)
            return list(cur.fetchall())

    def insert(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        columns = list(record)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            self._table(collection),
            sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        with self._cursor() as (conn, cur):
            cur.execute(query, [_adapt(record[column]) for column in columns])
            row = cur.fetchone()
            conn.commit()
        return row

    def update(
        self,
        collection: str,
        record_id: str,
        changes: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        if not changes:
            return self.get_by_id(collection, record_id)
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
        )
        params: list[Any] = [_adapt(value) for value in changes.values()]
        condition, condition_params = self._where({"id": record_id, **(expected or {})})
        params.extend(condition_params)
        query = sql.SQL("UPDATE {} SET {} WHERE {} RETURNING *").format(
            self._table(collection), assignments, condition
        )
        with self._cursor() as (conn, cur):
            cur.execute(query, params)
            row = cur.fetchone()
            conn.commit()
        return row

    def delete(self, collection: str, record_id: str) -> bool:
        query = sql.SQL("DELETE FROM {} WHERE id = %s").format(self._table(collection))
        with self._cursor() as (conn, cur):
            cur.execute(query, (record_id,))
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def count(self, collection: str, filters: Mapping[str, Any]) -> int:
        where_sql, params = self._where(filters)
        query = sql.SQL("SELECT COUNT(*) AS total FROM {} WHERE {}").format(
            self._table(collection), where_sql
        )
        with self._cursor() as (_, cur):
            cur.execute(query, params)
            row = cur.fetchone()
        return int(row["total"]) if row else 0
