"""Shared row helpers for the domain services."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence

import structlog

from clinicdb.connection import ConnectionManager, checkpoint, transaction
from clinicdb.errors import ConstraintViolation, IOFailure, NotFound, translate_integrity_error
from clinicdb.guard import SchemaGuard

logger = structlog.get_logger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def _db_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bool):
        return int(value)
    return value


def insert_row(conn: sqlite3.Connection, table: str, values: Mapping[str, Any]) -> None:
    columns = list(values)
    placeholders = ", ".join("?" for _ in columns)
    column_sql = ", ".join(f'"{name}"' for name in columns)
    conn.execute(
        f'INSERT INTO "{table}" ({column_sql}) VALUES ({placeholders})',
        [_db_value(values[name]) for name in columns],
    )


def update_row(
    conn: sqlite3.Connection,
    table: str,
    row_id: str,
    values: Mapping[str, Any],
) -> bool:
    """Update ``row_id``; returns ``False`` when the row does not exist."""

    if not values:
        row = conn.execute(f'SELECT 1 FROM "{table}" WHERE id = ?', (row_id,)).fetchone()
        return row is not None
    assignments = ", ".join(f'"{name}" = ?' for name in values)
    cursor = conn.execute(
        f'UPDATE "{table}" SET {assignments} WHERE id = ?',
        [_db_value(value) for value in values.values()] + [row_id],
    )
    return cursor.rowcount > 0


def fetch_row(conn: sqlite3.Connection, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(f'SELECT * FROM "{table}" WHERE id = ?', (row_id,)).fetchone()
    return dict(row) if row is not None else None


def fetch_all(conn: sqlite3.Connection, sql: str, params: Sequence[Any] = ()) -> list[Dict[str, Any]]:
    return [dict(row) for row in conn.execute(sql, params)]


def require_row(conn: sqlite3.Connection, table: str, row_id: str) -> Dict[str, Any]:
    row = fetch_row(conn, table, row_id)
    if row is None:
        raise NotFound(detail=f"{table}:{row_id}")
    return row


@contextmanager
def write_scope(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a domain write atomically and flush it to the main database file.

    Integrity errors surface as :class:`ConstraintViolation`; other SQLite
    errors as :class:`IOFailure`.
    """

    outermost = not conn.in_transaction
    try:
        with transaction(conn):
            yield conn
    except sqlite3.IntegrityError as exc:
        raise translate_integrity_error(exc) from exc
    except sqlite3.OperationalError as exc:
        if "constraint" in str(exc).lower():
            raise ConstraintViolation(detail=str(exc)) from exc
        logger.warning("database_write_failed", error=str(exc))
        raise IOFailure(detail=str(exc)) from exc
    if outermost:
        checkpoint(conn)


class Service:
    """Base for services bound to the shared connection and schema guard."""

    groups: Sequence[str] = ()

    def __init__(
        self,
        db_conn: sqlite3.Connection,
        guard: Optional[SchemaGuard] = None,
        *,
        manager: Optional[ConnectionManager] = None,
    ) -> None:
        self._db = db_conn
        self._guard = guard or SchemaGuard(db_conn)
        self._manager = manager

    def update_connection(self, db_conn: sqlite3.Connection) -> None:
        """Point the service at a new database connection."""

        self._db = db_conn
        if self._guard.conn is not db_conn:
            self._guard.reset(db_conn)

    def _ensure_tables(self) -> None:
        if self._manager is not None:
            # Reopens a lost handle; reopen listeners rebind this service.
            self._manager.ensure_connection()
        for group in self.groups:
            self._guard.ensure_group(group)

    @property
    def db(self) -> sqlite3.Connection:
        self._ensure_tables()
        return self._db


__all__ = [
    "Service",
    "fetch_all",
    "fetch_row",
    "insert_row",
    "new_id",
    "require_row",
    "update_row",
    "write_scope",
]
