"""Ownership of the single SQLite handle used by the clinic store.

The connection is opened in autocommit mode (``isolation_level=None``) so
that every multi-statement operation runs inside an explicit
:func:`transaction`.  Durability pragmas are re-applied on every (re)open.
"""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

import structlog

from clinicdb.db.config import DatabaseSettings, normalise_sqlite_path
from clinicdb.errors import IOFailure

logger = structlog.get_logger(__name__)


def connect(path: str | Path, settings: Optional[DatabaseSettings] = None) -> sqlite3.Connection:
    """Open ``path`` and apply the durability pragmas."""

    settings = settings or DatabaseSettings(path=Path(path))
    try:
        conn = sqlite3.connect(
            str(path),
            timeout=settings.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
    except sqlite3.Error as exc:
        raise IOFailure(detail=str(exc)) from exc
    conn.row_factory = sqlite3.Row
    try:
        apply_pragmas(conn, settings)
    except sqlite3.Error as exc:
        conn.close()
        raise IOFailure(detail=str(exc)) from exc
    return conn


def apply_pragmas(conn: sqlite3.Connection, settings: DatabaseSettings) -> None:
    for name, value in settings.pragmas().items():
        row = conn.execute(f"PRAGMA {name} = {value}").fetchone()
        if name == "journal_mode" and row is not None and str(row[0]).lower() != "wal":
            # In-memory databases cannot use WAL and report "memory".
            logger.debug("journal_mode_unavailable", requested="wal", actual=row[0])


@contextmanager
def transaction(conn: sqlite3.Connection, *, immediate: bool = True) -> Iterator[sqlite3.Connection]:
    """Run the block atomically; nested use becomes a savepoint."""

    if conn.in_transaction:
        name = f"sp_{uuid.uuid4().hex[:12]}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def foreign_keys_enabled(conn: sqlite3.Connection) -> bool:
    return bool(conn.execute("PRAGMA foreign_keys").fetchone()[0])


@contextmanager
def foreign_keys_suspended(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Disable foreign-key enforcement for the block, always restoring it.

    SQLite ignores ``PRAGMA foreign_keys`` inside a transaction, so the block
    must open (and finish) its own transaction.
    """

    if conn.in_transaction:
        raise RuntimeError("foreign key enforcement cannot be toggled inside a transaction")
    previous = foreign_keys_enabled(conn)
    conn.execute("PRAGMA foreign_keys = OFF")
    try:
        yield conn
    finally:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        if previous:
            conn.execute("PRAGMA foreign_keys = ON")


def checkpoint(conn: sqlite3.Connection) -> Optional[Tuple[int, int, int]]:
    """Force the write-ahead log into the main database file."""

    if conn.in_transaction:
        return None
    row = conn.execute("PRAGMA wal_checkpoint(TRUNCATE)").fetchone()
    if row is None:
        return None
    return int(row[0]), int(row[1]), int(row[2])


class ConnectionManager:
    """Own the process-wide connection to a single database file."""

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        settings: Optional[DatabaseSettings] = None,
    ) -> None:
        if settings is None:
            if path is None:
                raise ValueError("either path or settings is required")
            settings = DatabaseSettings(path=normalise_sqlite_path(path))
        self.settings = settings
        self.path = settings.path
        self._conn: Optional[sqlite3.Connection] = None
        self._reopen_listeners: List[Callable[[sqlite3.Connection], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        self._conn = connect(self.path, self.settings)
        logger.info("database_opened", path=str(self.path))
        return self._conn

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            checkpoint(self._conn)
        except sqlite3.Error:
            logger.warning("checkpoint_on_close_failed", path=str(self.path), exc_info=True)
        self._conn.close()
        self._conn = None
        logger.info("database_closed", path=str(self.path))

    def reinitialize(self) -> sqlite3.Connection:
        """Close and reopen the same resolved path."""

        self.close()
        conn = self.open()
        for listener in list(self._reopen_listeners):
            listener(conn)
        logger.info("database_reinitialized", path=str(self.path))
        return conn

    def on_reopen(self, listener: Callable[[sqlite3.Connection], None]) -> None:
        self._reopen_listeners.append(listener)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------
    def is_open(self) -> bool:
        return self._conn is not None

    def is_healthy(self) -> bool:
        if self._conn is None:
            return False
        try:
            self._conn.execute("SELECT 1").fetchone()
        except sqlite3.ProgrammingError:
            # Raised when the handle was closed underneath us.
            return False
        except sqlite3.Error:
            logger.warning("database_health_check_failed", path=str(self.path), exc_info=True)
            return False
        return True

    def ensure_connection(self) -> sqlite3.Connection:
        """Return a live connection, reopening a closed handle.

        Reopen listeners run on every reopen so holders of the old handle
        can rebind.
        """

        if self._conn is not None and self.is_healthy():
            return self._conn
        if self._conn is not None:
            logger.warning("database_connection_lost", path=str(self.path))
            self._conn = None
        return self.reinitialize()

    @property
    def connection(self) -> sqlite3.Connection:
        return self.ensure_connection()

    def checkpoint(self) -> Optional[Tuple[int, int, int]]:
        if self._conn is None:
            return None
        return checkpoint(self._conn)


__all__ = [
    "ConnectionManager",
    "apply_pragmas",
    "checkpoint",
    "connect",
    "foreign_keys_enabled",
    "foreign_keys_suspended",
    "transaction",
]
