"""Tabular store used by the importer, with a PostgreSQL implementation."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, Sequence

import psycopg
from psycopg import sql

logger = logging.getLogger(__name__)


# "replica" skips foreign-key triggers for this session; "origin" restores them.
_REPLICATION_ROLE_SQL = {
    "replica": sql.SQL("SET session_replication_role = replica"),
    "origin": sql.SQL("SET session_replication_role = origin"),
}


class StorageWriteError(RuntimeError):
    """Raised when a write to the store fails. Never retried."""


class GeoStore(Protocol):
    def upsert(
        self,
        collection: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str],
        update_columns: Sequence[str],
    ) -> int: ...

    def insert_ignore(
        self,
        collection: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str] = (),
    ) -> int: ...

    def truncate(self, collection: str) -> None: ...

    def set_foreign_key_checks(self, enabled: bool) -> None: ...


def _table_ident(qualified_table: str) -> sql.Composable:
    if "." in qualified_table:
        schema_name, table_name = qualified_table.split(".", 1)
        return sql.SQL("{}.{}").format(sql.Identifier(schema_name), sql.Identifier(table_name))
    return sql.Identifier(qualified_table)


def _column_list(columns: Sequence[str]) -> sql.Composable:
    return sql.SQL(", ").join(sql.Identifier(column) for column in columns)


def _insert_prefix(collection: str, columns: Sequence[str]) -> sql.Composed:
    return sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
        _table_ident(collection),
        _column_list(columns),
        sql.SQL(", ").join(sql.Placeholder() for _ in columns),
    )


def upsert_query(
    collection: str,
    columns: Sequence[str],
    conflict_keys: Sequence[str],
    update_columns: Sequence[str],
) -> sql.Composed:
    if not conflict_keys:
        raise ValueError("upsert requires at least one conflict key")
    if not update_columns:
        action = sql.SQL("DO NOTHING")
    else:
        action = sql.SQL("DO UPDATE SET {}").format(
            sql.SQL(", ").join(
                sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(column), sql.Identifier(column))
                for column in update_columns
            )
        )
    return sql.SQL("{} ON CONFLICT ({}) {}").format(
        _insert_prefix(collection, columns),
        _column_list(conflict_keys),
        action,
    )


def insert_ignore_query(
    collection: str,
    columns: Sequence[str],
    conflict_keys: Sequence[str] = (),
) -> sql.Composed:
    if conflict_keys:
        target = sql.SQL(" ({})").format(_column_list(conflict_keys))
    else:
        target = sql.SQL("")
    return sql.SQL("{} ON CONFLICT{} DO NOTHING").format(
        _insert_prefix(collection, columns),
        target,
    )


def _row_columns(rows: Sequence[Mapping[str, Any]]) -> tuple[str, ...]:
    columns = tuple(rows[0].keys())
    for row in rows[1:]:
        if tuple(row.keys()) != columns:
            raise ValueError("all rows in a batch must share the same columns")
    return columns


class PostgresStore:
    """``GeoStore`` over a psycopg connection.

    Every successful write is committed straight away so each batch is
    durable on its own. On failure the transaction is rolled back before
    ``StorageWriteError`` is raised, which keeps the session usable for
    restoring foreign-key checks.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def _write(self, query: sql.Composable, rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> int:
        params = [tuple(row[column] for column in columns) for row in rows]
        try:
            with self._conn.cursor() as cur:
                cur.executemany(query, params)
                written = cur.rowcount
            self._conn.commit()
        except psycopg.Error as exc:
            self._conn.rollback()
            raise StorageWriteError(str(exc)) from exc
        # rowcount is -1 when the driver cannot report it.
        return written if written >= 0 else len(rows)

    def upsert(
        self,
        collection: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str],
        update_columns: Sequence[str],
    ) -> int:
        if not rows:
            return 0
        columns = _row_columns(rows)
        query = upsert_query(collection, columns, conflict_keys, update_columns)
        return self._write(query, rows, columns)

    def insert_ignore(
        self,
        collection: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str] = (),
    ) -> int:
        if not rows:
            return 0
        columns = _row_columns(rows)
        query = insert_ignore_query(collection, columns, conflict_keys)
        return self._write(query, rows, columns)

    def truncate(self, collection: str) -> None:
        # DELETE rather than TRUNCATE: with replication role set to replica it
        # skips foreign-key triggers instead of cascading into other tables.
        try:
            with self._conn.cursor() as cur:
                cur.execute(sql.SQL("DELETE FROM {}").format(_table_ident(collection)))
            self._conn.commit()
        except psycopg.Error as exc:
            self._conn.rollback()
            raise StorageWriteError(f"failed to truncate {collection}: {exc}") from exc
        logger.debug("truncated %s", collection)

    def set_foreign_key_checks(self, enabled: bool) -> None:
        role = "origin" if enabled else "replica"
        try:
            with self._conn.cursor() as cur:
                cur.execute(_REPLICATION_ROLE_SQL[role])
            self._conn.commit()
        except psycopg.Error as exc:
            self._conn.rollback()
            raise StorageWriteError(f"failed to set session_replication_role={role}: {exc}") from exc
        logger.debug("session_replication_role=%s", role)
