"""Lazy, idempotent guards for optional and late-added tables and columns.

Services call :meth:`SchemaGuard.ensure_group` before touching a table so
that an older database file (or one whose migration was skipped) still gets
the table, its late-added columns and its indexes.  Results are memoised for
the lifetime of the guard.
"""

from __future__ import annotations

import sqlite3
from typing import Mapping, Optional, Sequence, Set, Tuple

import structlog
from sqlalchemy import Column
from sqlalchemy.dialects import sqlite as sqlite_dialect

from clinicdb import models
from clinicdb.connection import transaction
from clinicdb.errors import StepOutcome

logger = structlog.get_logger(__name__)

_DIALECT = sqlite_dialect.dialect()

GUARD_GROUPS: Mapping[str, Sequence[str]] = {
    "patients": ("patients", "patient_images"),
    "appointments": ("appointments",),
    "payments": ("payments", "installment_payments"),
    "lab_orders": ("labs", "lab_orders"),
    "medications": ("medications", "prescriptions", "prescription_medications"),
    "clinic_needs": ("clinic_needs",),
    "clinic_expenses": ("clinic_expenses",),
    "smart_alerts": ("smart_alerts",),
    "tooth_treatments": ("tooth_treatments", "tooth_treatment_images"),
    "treatment_sessions": ("tooth_treatments", "treatment_sessions"),
    "dental_treatments": ("dental_treatments", "dental_treatment_images"),
}

_BENIGN_ERRORS = ("duplicate column", "already exists")


def _is_benign(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return any(fragment in message for fragment in _BENIGN_ERRORS)


def column_definition(column: Column) -> Tuple[str, Optional[str]]:
    """Return the ``(type, default)`` used when adding ``column`` late.

    ``ALTER TABLE ADD COLUMN`` only accepts constant defaults, so
    ``CURRENT_TIMESTAMP`` defaults are dropped.
    """

    type_ = column.type.compile(dialect=_DIALECT)
    default = None
    if column.server_default is not None:
        text = str(column.server_default.arg)
        if text.upper() != "CURRENT_TIMESTAMP":
            default = text
    return type_, default


class SchemaGuard:
    """Check-then-create helper bound to one connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._tables: Set[str] = set()
        self._columns: Set[Tuple[str, str]] = set()
        self._groups: Set[str] = set()

    def reset(self, conn: Optional[sqlite3.Connection] = None) -> None:
        if conn is not None:
            self.conn = conn
        self._tables.clear()
        self._columns.clear()
        self._groups.clear()

    def ensure_table_exists(self, name: str, ddl: Optional[str] = None) -> bool:
        """Create ``name`` when missing; returns ``True`` when it was created."""

        if name in self._tables:
            return False
        created = False
        if not models.table_exists(self.conn, name):
            try:
                if ddl is not None:
                    self.conn.execute(ddl)
                else:
                    models.create_tables(self.conn, models.TABLES_BY_NAME[name])
                created = True
                logger.info("guard_table_created", table=name)
            except sqlite3.OperationalError as exc:
                if not _is_benign(exc):
                    raise
        self._tables.add(name)
        return created

    def ensure_column_exists(
        self,
        table: str,
        column: str,
        type_: str,
        default: Optional[str] = None,
    ) -> bool:
        """Add ``column`` to ``table`` when missing; returns ``True`` when added."""

        key = (table, column)
        if key in self._columns:
            return False
        added = False
        if column not in models.table_columns(self.conn, table):
            definition = type_ if default is None else f"{type_} DEFAULT {default}"
            try:
                self.conn.execute(f'ALTER TABLE "{table}" ADD COLUMN "{column}" {definition}')
                added = True
                logger.info("guard_column_added", table=table, column=column)
            except sqlite3.OperationalError as exc:
                if not _is_benign(exc):
                    raise
        self._columns.add(key)
        return added

    def ensure_model_columns(self, name: str) -> int:
        """Add every column the current table definition has and the file lacks."""

        table = models.TABLES_BY_NAME[name]
        present = set(models.table_columns(self.conn, name))
        added = 0
        for column in table.columns:
            if column.name in present:
                self._columns.add((name, column.name))
                continue
            type_, default = column_definition(column)
            if self.ensure_column_exists(name, column.name, type_, default):
                added += 1
        return added

    def ensure_group(self, group: str) -> bool:
        """Ensure every table of ``group``, its columns and its indexes."""

        if group in self._groups:
            return False
        try:
            names = GUARD_GROUPS[group]
        except KeyError:
            raise ValueError(f"Unknown guard group {group!r}") from None

        changed = False
        with transaction(self.conn):
            for name in names:
                changed |= self.ensure_table_exists(name)
                changed |= bool(self.ensure_model_columns(name))
                models.create_indexes(self.conn, models.TABLES_BY_NAME[name])
        self._groups.add(group)
        return changed

    def ensure_all(self) -> list[StepOutcome]:
        """Run every registered group, reporting failures instead of raising."""

        outcomes = []
        for group in GUARD_GROUPS:
            name = f"guard_{group}"
            try:
                changed = self.ensure_group(group)
            except Exception as exc:  # noqa: BLE001 - a failed group must not block startup
                logger.warning("guard_group_failed", group=group, error=str(exc))
                outcomes.append(StepOutcome.failed(name, exc))
                continue
            outcomes.append(StepOutcome(name=name, changed=changed))
        return outcomes


def _ensure(group: str):
    def ensure(conn: sqlite3.Connection) -> None:
        SchemaGuard(conn).ensure_group(group)

    ensure.__name__ = f"ensure_{group}_table"
    ensure.__doc__ = f"Ensure the {group.replace('_', ' ')} tables and columns exist."
    return ensure


ensure_patients_table = _ensure("patients")
ensure_appointments_table = _ensure("appointments")
ensure_dental_treatments_table = _ensure("dental_treatments")
ensure_payments_table = _ensure("payments")
ensure_lab_orders_table = _ensure("lab_orders")
ensure_medications_table = _ensure("medications")
ensure_clinic_needs_table = _ensure("clinic_needs")
ensure_clinic_expenses_table = _ensure("clinic_expenses")
ensure_smart_alerts_table = _ensure("smart_alerts")
ensure_tooth_treatments_table = _ensure("tooth_treatments")
ensure_treatment_sessions_table = _ensure("treatment_sessions")


__all__ = [
    "GUARD_GROUPS",
    "SchemaGuard",
    "column_definition",
    "ensure_appointments_table",
    "ensure_clinic_expenses_table",
    "ensure_clinic_needs_table",
    "ensure_dental_treatments_table",
    "ensure_lab_orders_table",
    "ensure_medications_table",
    "ensure_patients_table",
    "ensure_payments_table",
    "ensure_smart_alerts_table",
    "ensure_tooth_treatments_table",
    "ensure_treatment_sessions_table",
]
