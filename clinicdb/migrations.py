"""Versioned schema migrations and the ``schema_version`` ledger.

Every step is idempotent so that a database which already received part of a
step (for example a column added by an older build) does not abort it.
Failed steps are logged, recorded in ``schema_version_skipped`` and never
retried automatically; startup continues with the next version.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import structlog

from clinicdb import models, repair
from clinicdb.connection import foreign_keys_suspended, transaction
from clinicdb.errors import StepOutcome
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


def ensure_ledger(conn: sqlite3.Connection) -> None:
    """Ensure the version ledger and the skipped-version table exist."""

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version_skipped (
            version INTEGER PRIMARY KEY,
            failed_at TEXT NOT NULL,
            error TEXT
        )
        """
    )


def current_version(conn: sqlite3.Connection) -> int:
    ensure_ledger(conn)
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def applied_versions(conn: sqlite3.Connection) -> List[int]:
    ensure_ledger(conn)
    return [int(row[0]) for row in conn.execute("SELECT version FROM schema_version ORDER BY version")]


def skipped_versions(conn: sqlite3.Connection) -> Dict[int, Optional[str]]:
    ensure_ledger(conn)
    return {
        int(row[0]): row[1]
        for row in conn.execute("SELECT version, error FROM schema_version_skipped ORDER BY version")
    }


def record_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (version,))


def _mark_skipped(conn: sqlite3.Connection, version: int, error: str) -> None:
    with transaction(conn):
        conn.execute(
            "INSERT OR REPLACE INTO schema_version_skipped (version, failed_at, error) VALUES (?, ?, ?)",
            (version, iso_now(), error),
        )


# ---------------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------------


def column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    return column in models.table_columns(conn, table)


def add_column(conn: sqlite3.Connection, table: str, column: str, definition: str) -> bool:
    """Add ``column`` to ``table`` unless it (or the table) is missing.

    A missing table is left alone: it is created later from the current
    metadata, which already includes the column.
    """

    if not models.table_exists(conn, table):
        logger.debug("column_add_skipped_missing_table", table=table, column=column)
        return False
    if column_exists(conn, table, column):
        return False
    conn.execute(f'ALTER TABLE "{table}" ADD COLUMN "{column}" {definition}')
    logger.info("column_added", table=table, column=column)
    return True


def _create(*tables):
    def apply(conn: sqlite3.Connection) -> None:
        models.create_tables(conn, *tables)

    return apply


def _add_columns(table: str, columns: Sequence[tuple[str, str]], *, indexes: bool = False):
    def apply(conn: sqlite3.Connection) -> None:
        for column, definition in columns:
            add_column(conn, table, column, definition)
        if indexes and models.table_exists(conn, table):
            models.create_indexes(conn, models.TABLES_BY_NAME[table])

    return apply


def _repair_when(detect: Callable[[sqlite3.Connection], bool], fix: Callable[[sqlite3.Connection], int]):
    def apply(conn: sqlite3.Connection) -> None:
        if detect(conn):
            fix(conn)

    return apply


@dataclass(frozen=True)
class MigrationStep:
    version: int
    description: str
    apply: Callable[[sqlite3.Connection], None]
    suspend_foreign_keys: bool = False


MIGRATIONS: Sequence[MigrationStep] = (
    MigrationStep(
        1,
        "Add profile image to patients",
        _add_columns("patients", [("profile_image", "TEXT")]),
    ),
    MigrationStep(2, "Create installment payments", _create(models.installment_payments)),
    MigrationStep(3, "Create patient images", _create(models.patient_images)),
    MigrationStep(
        4,
        "Add doctor name to settings",
        _add_columns("settings", [("doctor_name", "TEXT DEFAULT 'د. محمد أحمد'")]),
    ),
    MigrationStep(5, "Create labs and lab orders", _create(models.labs, models.lab_orders)),
    MigrationStep(
        6,
        "Map retired dental treatment statuses",
        _repair_when(repair.detect_legacy_treatment_status, repair.repair_dental_treatments),
        suspend_foreign_keys=True,
    ),
    MigrationStep(
        7,
        "Drop dental treatment status check",
        _repair_when(repair.detect_legacy_treatment_status, repair.repair_dental_treatments),
        suspend_foreign_keys=True,
    ),
    MigrationStep(
        8,
        "Remove tooth record link from dental treatment images",
        _repair_when(repair.detect_image_tooth_record, repair.repair_dental_treatment_images),
        suspend_foreign_keys=True,
    ),
    MigrationStep(
        9,
        "Use FDI tooth numbering for dental treatments",
        _repair_when(repair.detect_legacy_tooth_range, repair.repair_dental_treatments),
        suspend_foreign_keys=True,
    ),
    MigrationStep(
        10,
        "Link payments to tooth treatments",
        _add_columns(
            "payments",
            [
                ("tooth_treatment_id", "TEXT"),
                ("treatment_total_cost", "REAL"),
                ("treatment_total_paid", "REAL"),
                ("treatment_remaining_balance", "REAL"),
            ],
            indexes=True,
        ),
    ),
    MigrationStep(
        11,
        "Add patient number",
        _add_columns("patients", [("patient_number", "INTEGER CHECK (patient_number > 0)")]),
    ),
    MigrationStep(
        12,
        "Link payments to lab orders",
        _add_columns("payments", [("lab_order_id", "TEXT")], indexes=True),
    ),
)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


def _ordered(steps: Iterable[MigrationStep]) -> List[MigrationStep]:
    ordered = sorted(steps, key=lambda step: step.version)
    seen: set[int] = set()
    for step in ordered:
        if step.version in seen:
            raise ValueError(f"Duplicate migration version {step.version}")
        seen.add(step.version)
    return ordered


def _apply_step(conn: sqlite3.Connection, step: MigrationStep) -> None:
    if step.suspend_foreign_keys:
        with foreign_keys_suspended(conn):
            with transaction(conn):
                step.apply(conn)
                record_version(conn, step.version)
        return
    with transaction(conn):
        step.apply(conn)
        record_version(conn, step.version)


def _step_name(step: MigrationStep) -> str:
    return f"migration_{step.version}"


def run_migrations(
    conn: sqlite3.Connection, steps: Optional[Sequence[MigrationStep]] = None
) -> List[StepOutcome]:
    """Apply every step newer than the ledger that has not been skipped.

    Raises ``ValueError`` for duplicate step versions; step failures are
    logged, marked as skipped and returned as failed outcomes.
    """

    ordered = _ordered(MIGRATIONS if steps is None else steps)
    version = current_version(conn)
    skipped = skipped_versions(conn)
    outcomes: List[StepOutcome] = []

    for step in ordered:
        if step.version <= version or step.version in skipped:
            continue
        logger.info("migration_applying", version=step.version, description=step.description)
        try:
            _apply_step(conn, step)
        except Exception as exc:  # noqa: BLE001 - a failed step must not block startup
            logger.warning(
                "migration_failed",
                version=step.version,
                description=step.description,
                error=str(exc),
                exc_info=True,
            )
            _mark_skipped(conn, step.version, f"{type(exc).__name__}: {exc}")
            outcomes.append(StepOutcome.failed(_step_name(step), exc))
            continue
        version = step.version
        logger.info("migration_applied", version=step.version)
        outcomes.append(StepOutcome(name=_step_name(step), changed=True))

    return outcomes


def retry_skipped(
    conn: sqlite3.Connection, version: int, steps: Optional[Sequence[MigrationStep]] = None
) -> StepOutcome:
    """Clear the skipped mark for ``version`` and apply that step again."""

    step = next(
        (item for item in _ordered(MIGRATIONS if steps is None else steps) if item.version == version),
        None,
    )
    if step is None:
        raise ValueError(f"Unknown migration version {version}")

    with transaction(conn):
        conn.execute("DELETE FROM schema_version_skipped WHERE version = ?", (version,))
    try:
        _apply_step(conn, step)
    except Exception as exc:  # noqa: BLE001
        logger.warning("migration_retry_failed", version=version, error=str(exc))
        _mark_skipped(conn, version, f"{type(exc).__name__}: {exc}")
        return StepOutcome.failed(_step_name(step), exc)
    logger.info("migration_retried", version=version)
    return StepOutcome(name=_step_name(step), changed=True)


def ensure_base_schema(conn: sqlite3.Connection) -> None:
    """Create the tables every installation has had since the first release."""

    with transaction(conn):
        models.require_tables(conn, models.BASE_TABLES)


__all__ = [
    "MIGRATIONS",
    "MigrationStep",
    "add_column",
    "applied_versions",
    "column_exists",
    "current_version",
    "ensure_base_schema",
    "ensure_ledger",
    "record_version",
    "retry_skipped",
    "run_migrations",
    "skipped_versions",
]
