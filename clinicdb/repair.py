"""Structural repair for tables whose on-disk shape has drifted.

Some installations reached a schema the version ledger cannot explain (older
code paths recreated tables directly).  The checks here inspect the actual
table definition and rebuild the table into the current shape when a known
bad state is detected.  A table already in the current shape is left alone.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import Table

from clinicdb import models
from clinicdb.connection import foreign_keys_suspended, transaction
from clinicdb.errors import StepOutcome

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    notnull: bool
    default: Optional[str]
    pk: bool


@dataclass(frozen=True)
class TableDescriptor:
    """Actual definition of a table as recorded by SQLite."""

    name: str
    columns: Sequence[ColumnInfo]
    sql: str

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def column(self, name: str) -> Optional[ColumnInfo]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    def sql_contains(self, fragment: str) -> bool:
        return _squash(fragment) in _squash(self.sql)


def _squash(sql: str) -> str:
    return re.sub(r"\s+", " ", sql).strip().lower()


def describe_table(conn: sqlite3.Connection, name: str) -> Optional[TableDescriptor]:
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone()
    if row is None:
        return None
    columns = [
        ColumnInfo(
            name=info[1],
            type=str(info[2] or ""),
            notnull=bool(info[3]),
            default=info[4],
            pk=bool(info[5]),
        )
        for info in conn.execute(f'PRAGMA table_info("{name}")')
    ]
    return TableDescriptor(name=name, columns=columns, sql=row[0] or "")


def copy_select(
    descriptor: TableDescriptor,
    table: Table,
    overrides: Optional[Mapping[str, str]] = None,
    where: Optional[str] = None,
) -> str:
    """Build the ``SELECT`` feeding a rebuild of ``descriptor`` into ``table``.

    Columns missing from the old table fall back to their server default (or
    NULL); ``overrides`` supplies SQL expressions for transformed columns.
    """

    overrides = overrides or {}
    expressions = []
    for column in table.columns:
        if column.name in overrides:
            expr = overrides[column.name]
        elif descriptor.has_column(column.name):
            expr = f'"{column.name}"'
        elif column.server_default is not None:
            expr = str(column.server_default.arg)
        else:
            expr = "NULL"
        expressions.append(f'{expr} AS "{column.name}"')
    sql = f'SELECT {", ".join(expressions)} FROM "{descriptor.name}"'
    if where:
        sql += f" WHERE {where}"
    return sql


def _rebuild(conn: sqlite3.Connection, table: Table, select_sql: str) -> int:
    name = table.name
    temp_name = f"{name}__rebuild"
    column_list = ", ".join(f'"{column.name}"' for column in table.columns)

    conn.execute(f'DROP TABLE IF EXISTS "{temp_name}"')
    conn.execute(models.table_ddl(table, name=temp_name))
    cursor = conn.execute(f'INSERT INTO "{temp_name}" ({column_list}) {select_sql}')
    copied = cursor.rowcount
    conn.execute(f'DROP TABLE "{name}"')
    conn.execute(f'ALTER TABLE "{temp_name}" RENAME TO "{name}"')
    models.create_indexes(conn, table)

    violations = conn.execute(f'PRAGMA foreign_key_check("{name}")').fetchall()
    if violations:
        logger.warning("rebuild_foreign_key_violations", table=name, count=len(violations))
    logger.info("table_rebuilt", table=name, rows=copied)
    return copied


def rebuild_table(conn: sqlite3.Connection, table: Table, select_sql: str) -> int:
    """Atomically replace ``table`` with its current definition.

    Rows are copied through ``select_sql`` (see :func:`copy_select`).  When
    called outside a transaction, foreign-key enforcement is suspended and a
    transaction is opened for the rebuild; callers already inside a
    transaction are responsible for both.
    """

    if conn.in_transaction:
        return _rebuild(conn, table, select_sql)
    with foreign_keys_suspended(conn):
        with transaction(conn):
            return _rebuild(conn, table, select_sql)


# ---------------------------------------------------------------------------
# Known drift states
# ---------------------------------------------------------------------------

LEGACY_TOOTH_RANGE = "tooth_number >= 1 AND tooth_number <= 32"
LEGACY_TREATMENT_STATUS = "treatment_status IN ('active', 'completed', 'cancelled', 'on_hold')"
LEGACY_LAB_ORDER_STATUS = "'pending', 'completed', 'cancelled'"

TREATMENT_STATUS_MAP = (
    "CASE "
    "WHEN treatment_status = 'active' THEN 'in_progress' "
    "WHEN treatment_status = 'on_hold' THEN 'planned' "
    "ELSE COALESCE(treatment_status, 'planned') END"
)

# Legacy rows used Universal numbering (1-32); values that are not already
# valid FDI numbers are translated to their FDI equivalent.
TOOTH_NUMBER_MAP = (
    f"CASE WHEN {models.FDI_CHECK_SQL} THEN tooth_number "
    "WHEN tooth_number BETWEEN 1 AND 8 THEN 19 - tooth_number "
    "WHEN tooth_number BETWEEN 9 AND 16 THEN tooth_number + 12 "
    "WHEN tooth_number BETWEEN 17 AND 24 THEN 55 - tooth_number "
    "WHEN tooth_number BETWEEN 25 AND 32 THEN tooth_number + 16 "
    "ELSE tooth_number END"
)

LAB_ORDER_STATUS_MAP = (
    "CASE "
    "WHEN status = 'pending' THEN 'معلق' "
    "WHEN status = 'completed' THEN 'مكتمل' "
    "WHEN status = 'cancelled' THEN 'ملغي' "
    "ELSE COALESCE(status, 'معلق') END"
)


def _dental_treatments_overrides() -> Dict[str, str]:
    return {
        "tooth_number": TOOTH_NUMBER_MAP,
        "treatment_status": TREATMENT_STATUS_MAP,
    }


def detect_legacy_tooth_range(conn: sqlite3.Connection) -> bool:
    descriptor = describe_table(conn, "dental_treatments")
    return descriptor is not None and descriptor.sql_contains(LEGACY_TOOTH_RANGE)


def detect_legacy_treatment_status(conn: sqlite3.Connection) -> bool:
    descriptor = describe_table(conn, "dental_treatments")
    return descriptor is not None and descriptor.sql_contains(LEGACY_TREATMENT_STATUS)


def repair_dental_treatments(conn: sqlite3.Connection) -> int:
    descriptor = describe_table(conn, "dental_treatments")
    if descriptor is None:
        return 0
    select_sql = copy_select(descriptor, models.dental_treatments, _dental_treatments_overrides())
    return rebuild_table(conn, models.dental_treatments, select_sql)


def detect_image_tooth_record(conn: sqlite3.Connection) -> bool:
    descriptor = describe_table(conn, "dental_treatment_images")
    return descriptor is not None and descriptor.has_column("tooth_record_id")


def repair_dental_treatment_images(conn: sqlite3.Connection) -> int:
    descriptor = describe_table(conn, "dental_treatment_images")
    if descriptor is None:
        return 0
    required = ("dental_treatment_id", "patient_id", "tooth_number", "image_path", "image_type")
    if not all(descriptor.has_column(name) for name in required):
        where = "0"
    else:
        where = " AND ".join(f'"{name}" IS NOT NULL' for name in required)
    select_sql = copy_select(descriptor, models.dental_treatment_images, where=where)
    return rebuild_table(conn, models.dental_treatment_images, select_sql)


def detect_required_image_treatment(conn: sqlite3.Connection) -> bool:
    descriptor = describe_table(conn, "tooth_treatment_images")
    if descriptor is None:
        return False
    column = descriptor.column("tooth_treatment_id")
    return column is not None and column.notnull


def repair_tooth_treatment_images(conn: sqlite3.Connection) -> int:
    descriptor = describe_table(conn, "tooth_treatment_images")
    if descriptor is None:
        return 0
    select_sql = copy_select(descriptor, models.tooth_treatment_images)
    return rebuild_table(conn, models.tooth_treatment_images, select_sql)


def detect_legacy_lab_order_status(conn: sqlite3.Connection) -> bool:
    descriptor = describe_table(conn, "lab_orders")
    return descriptor is not None and descriptor.sql_contains(LEGACY_LAB_ORDER_STATUS)


def repair_lab_orders(conn: sqlite3.Connection) -> int:
    descriptor = describe_table(conn, "lab_orders")
    if descriptor is None:
        return 0
    select_sql = copy_select(descriptor, models.lab_orders, {"status": LAB_ORDER_STATUS_MAP})
    return rebuild_table(conn, models.lab_orders, select_sql)


@dataclass(frozen=True)
class DriftCheck:
    name: str
    detect: Callable[[sqlite3.Connection], bool]
    repair: Callable[[sqlite3.Connection], int]


DRIFT_CHECKS: Sequence[DriftCheck] = (
    DriftCheck("dental_treatments_tooth_range", detect_legacy_tooth_range, repair_dental_treatments),
    DriftCheck(
        "dental_treatments_status_values",
        detect_legacy_treatment_status,
        repair_dental_treatments,
    ),
    DriftCheck(
        "dental_treatment_images_tooth_record",
        detect_image_tooth_record,
        repair_dental_treatment_images,
    ),
    DriftCheck(
        "tooth_treatment_images_optional_treatment",
        detect_required_image_treatment,
        repair_tooth_treatment_images,
    ),
    DriftCheck("lab_orders_status_values", detect_legacy_lab_order_status, repair_lab_orders),
)


def repair_drift(
    conn: sqlite3.Connection, checks: Sequence[DriftCheck] = DRIFT_CHECKS
) -> List[StepOutcome]:
    """Run every drift check, repairing the tables that need it.

    Failures are logged and reported in the returned outcomes; they never
    propagate.
    """

    outcomes: List[StepOutcome] = []
    for check in checks:
        try:
            if not check.detect(conn):
                outcomes.append(StepOutcome(name=check.name))
                continue
            logger.info("drift_detected", check=check.name)
            rows = check.repair(conn)
        except Exception as exc:  # noqa: BLE001 - a failed repair must not block startup
            logger.warning("drift_repair_failed", check=check.name, error=str(exc))
            outcomes.append(StepOutcome.failed(check.name, exc))
            continue
        logger.info("drift_repaired", check=check.name, rows=rows)
        outcomes.append(StepOutcome(name=check.name, changed=True))
    return outcomes


# ---------------------------------------------------------------------------
# Legacy patients shape
# ---------------------------------------------------------------------------

DEFAULT_PATIENT_CONDITION = "يحتاج إلى تقييم طبي"
DEFAULT_PATIENT_AGE = 25


def has_legacy_patients(conn: sqlite3.Connection) -> bool:
    descriptor = describe_table(conn, "patients")
    return descriptor is not None and descriptor.has_column("first_name")


def migrate_legacy_patients(conn: sqlite3.Connection) -> StepOutcome:
    """Convert the first/last-name patients table into the current shape.

    Runs before the base schema is created so that ``CREATE TABLE IF NOT
    EXISTS`` does not leave the legacy definition in place.
    """

    name = "legacy_patients"
    try:
        descriptor = describe_table(conn, "patients")
        if descriptor is None or not descriptor.has_column("first_name"):
            return StepOutcome(name=name)

        def column(expr_name: str) -> str:
            return f'"{expr_name}"' if descriptor.has_column(expr_name) else "NULL"

        age_expr = (
            "CASE WHEN date_of_birth IS NOT NULL AND date_of_birth != '' "
            "THEN MAX(1, CAST((julianday('now') - julianday(date_of_birth)) / 365.25 AS INTEGER)) "
            f"ELSE {DEFAULT_PATIENT_AGE} END"
            if descriptor.has_column("date_of_birth")
            else str(DEFAULT_PATIENT_AGE)
        )
        overrides = {
            "serial_number": "SUBSTR(id, 1, 8)",
            "full_name": "TRIM(COALESCE(first_name, '') || ' ' || COALESCE(last_name, ''))",
            "gender": "'male'",
            "age": f"COALESCE({age_expr}, {DEFAULT_PATIENT_AGE})",
            "patient_number": "NULL",
            "patient_condition": (
                f"COALESCE(NULLIF({column('medical_history')}, ''), '{DEFAULT_PATIENT_CONDITION}')"
            ),
            "medical_conditions": column("insurance_info"),
        }
        select_sql = copy_select(descriptor, models.patients, overrides)
        rows = rebuild_table(conn, models.patients, select_sql)
    except Exception as exc:  # noqa: BLE001
        logger.warning("legacy_patient_migration_failed", error=str(exc))
        return StepOutcome.failed(name, exc)
    logger.info("legacy_patients_migrated", rows=rows)
    return StepOutcome(name=name, changed=True)


__all__ = [
    "ColumnInfo",
    "DRIFT_CHECKS",
    "DriftCheck",
    "TableDescriptor",
    "copy_select",
    "describe_table",
    "has_legacy_patients",
    "migrate_legacy_patients",
    "rebuild_table",
    "repair_drift",
]
