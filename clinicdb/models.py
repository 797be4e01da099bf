"""SQLAlchemy table metadata for the clinic database.

This module defines the reusable SQLAlchemy ``Table`` objects for the SQLite
schema managed by :mod:`clinicdb.migrations`, :mod:`clinicdb.repair` and
:mod:`clinicdb.guard`.  The objects describe the *current* shape of each
table; older installations are brought to this shape by migrations, drift
repair and the lazy guard.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Iterable, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects import sqlite as sqlite_dialect
from sqlalchemy.schema import CreateIndex, CreateTable
from sqlalchemy.sql import text

logger = structlog.get_logger(__name__)

metadata = MetaData()

_NOW = text("CURRENT_TIMESTAMP")

# FDI two-digit notation: permanent teeth 11-48, primary teeth 51-85.
FDI_RANGES: Sequence[tuple[int, int]] = (
    (11, 18),
    (21, 28),
    (31, 38),
    (41, 48),
    (51, 55),
    (61, 65),
    (71, 75),
    (81, 85),
)
FDI_CHECK_SQL = " OR ".join(
    f"(tooth_number >= {low} AND tooth_number <= {high})" for low, high in FDI_RANGES
)

TREATMENT_STATUSES = ("planned", "in_progress", "completed", "cancelled")
LAB_ORDER_STATUSES = ("معلق", "مكتمل", "ملغي")
ALERT_TYPES = (
    "appointment",
    "payment",
    "treatment",
    "follow_up",
    "prescription",
    "lab_order",
    "inventory",
)
ALERT_PRIORITIES = ("high", "medium", "low")
SESSION_STATUSES = ("planned", "completed", "cancelled")


def is_valid_tooth_number(value: int) -> bool:
    return any(low <= value <= high for low, high in FDI_RANGES)


def _in_list(column: str, values: Iterable[str]) -> str:
    quoted = ", ".join("'" + value.replace("'", "''") + "'" for value in values)
    return f"{column} IN ({quoted})"


patients = Table(
    "patients",
    metadata,
    Column("id", String, primary_key=True),
    Column("serial_number", String, nullable=False, unique=True),
    Column("full_name", String, nullable=False),
    Column("gender", String, nullable=False),
    Column("age", Integer, nullable=False),
    Column("patient_number", Integer, nullable=True),
    Column("patient_condition", Text, nullable=False),
    Column("allergies", Text, nullable=True),
    Column("medical_conditions", Text, nullable=True),
    Column("email", String, nullable=True),
    Column("address", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("phone", String, nullable=True),
    Column("date_added", String, nullable=True, server_default=_NOW),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
    Column("profile_image", Text, nullable=True),
    CheckConstraint("gender IN ('male', 'female')"),
    CheckConstraint("age > 0"),
    CheckConstraint("patient_number > 0"),
)
Index("idx_patients_name", patients.c.full_name)
Index("idx_patients_serial", patients.c.serial_number)
Index("idx_patients_phone", patients.c.phone)
Index("idx_patients_date_added", patients.c.date_added)

settings = Table(
    "settings",
    metadata,
    Column("id", String, primary_key=True),
    Column("clinic_name", String, nullable=True),
    Column("clinic_address", Text, nullable=True),
    Column("clinic_phone", String, nullable=True),
    Column("currency", String, nullable=True, server_default=text("'USD'")),
    Column("language", String, nullable=True, server_default=text("'ar'")),
    Column("doctor_name", String, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)

appointments = Table(
    "appointments",
    metadata,
    Column("id", String, primary_key=True),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column("treatment_id", String, nullable=True),
    Column("title", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("start_time", String, nullable=False),
    Column("end_time", String, nullable=False),
    Column("status", String, nullable=True, server_default=text("'scheduled'")),
    Column("cost", Float, nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_appointments_date", appointments.c.start_time)
Index("idx_appointments_patient", appointments.c.patient_id)

payments = Table(
    "payments",
    metadata,
    Column("id", String, primary_key=True),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column("tooth_treatment_id", String, nullable=True),
    Column("lab_order_id", String, nullable=True),
    Column("appointment_id", String, nullable=True),
    Column("amount", Float, nullable=False),
    Column("payment_method", String, nullable=False),
    Column("payment_date", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("receipt_number", String, nullable=True),
    Column("status", String, nullable=True, server_default=text("'completed'")),
    Column("notes", Text, nullable=True),
    Column("discount_amount", Float, nullable=True, server_default=text("0")),
    Column("tax_amount", Float, nullable=True, server_default=text("0")),
    Column("total_amount", Float, nullable=True),
    Column("treatment_total_cost", Float, nullable=True),
    Column("treatment_total_paid", Float, nullable=True),
    Column("treatment_remaining_balance", Float, nullable=True),
    Column("total_amount_due", Float, nullable=True),
    Column("amount_paid", Float, nullable=True),
    Column("remaining_balance", Float, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_payments_date", payments.c.payment_date)
Index("idx_payments_patient", payments.c.patient_id)
Index("idx_payments_tooth_treatment", payments.c.tooth_treatment_id)
Index("idx_payments_patient_treatment", payments.c.patient_id, payments.c.tooth_treatment_id)
Index("idx_payments_lab_order", payments.c.lab_order_id)

installment_payments = Table(
    "installment_payments",
    metadata,
    Column("id", String, primary_key=True),
    Column("payment_id", String, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False),
    Column("installment_number", Integer, nullable=False),
    Column("amount", Float, nullable=False),
    Column("due_date", String, nullable=False),
    Column("paid_date", String, nullable=True),
    Column("status", String, nullable=True, server_default=text("'pending'")),
    Column("notes", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)

patient_images = Table(
    "patient_images",
    metadata,
    Column("id", String, primary_key=True),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column("image_path", Text, nullable=False),
    Column("image_type", String, nullable=True),
    Column("description", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
)

tooth_treatments = Table(
    "tooth_treatments",
    metadata,
    Column("id", String, primary_key=True),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column("tooth_number", Integer, nullable=False),
    Column("tooth_name", String, nullable=True),
    Column("treatment_type", String, nullable=False),
    Column("treatment_category", String, nullable=True),
    Column("treatment_status", String, nullable=True, server_default=text("'planned'")),
    Column("treatment_color", String, nullable=True, server_default=text("'#22c55e'")),
    Column("start_date", String, nullable=True),
    Column("completion_date", String, nullable=True),
    Column("cost", Float, nullable=True, server_default=text("0")),
    Column("priority", Integer, nullable=True, server_default=text("1")),
    Column("notes", Text, nullable=True),
    Column(
        "appointment_id",
        String,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("created_at", String, nullable=False),
    Column("updated_at", String, nullable=False),
    CheckConstraint(_in_list("treatment_status", TREATMENT_STATUSES)),
)
Index("idx_tooth_treatments_patient_id", tooth_treatments.c.patient_id)
Index("idx_tooth_treatments_tooth_number", tooth_treatments.c.tooth_number)
Index(
    "idx_tooth_treatments_patient_tooth",
    tooth_treatments.c.patient_id,
    tooth_treatments.c.tooth_number,
)
Index(
    "idx_tooth_treatments_priority",
    tooth_treatments.c.patient_id,
    tooth_treatments.c.tooth_number,
    tooth_treatments.c.priority,
)

tooth_treatment_images = Table(
    "tooth_treatment_images",
    metadata,
    Column("id", String, primary_key=True),
    Column(
        "tooth_treatment_id",
        String,
        ForeignKey("tooth_treatments.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column("tooth_number", Integer, nullable=False),
    Column("image_path", Text, nullable=False),
    Column("image_type", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("taken_date", String, nullable=True),
    Column("created_at", String, nullable=False),
    Column("updated_at", String, nullable=False),
)
Index("idx_tooth_treatment_images_treatment_id", tooth_treatment_images.c.tooth_treatment_id)
Index("idx_tooth_treatment_images_patient_id", tooth_treatment_images.c.patient_id)

dental_treatments = Table(
    "dental_treatments",
    metadata,
    Column("id", String, primary_key=True),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column(
        "appointment_id",
        String,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("tooth_number", Integer, nullable=False),
    Column("tooth_name", String, nullable=True),
    Column("current_treatment", String, nullable=True),
    Column("next_treatment", String, nullable=True),
    Column("treatment_details", Text, nullable=True),
    Column("treatment_status", String, nullable=True, server_default=text("'planned'")),
    Column("treatment_color", String, nullable=True, server_default=text("'#ef4444'")),
    Column("cost", Float, nullable=True, server_default=text("0")),
    Column("notes", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
    CheckConstraint(FDI_CHECK_SQL),
)
Index("idx_dental_treatments_patient", dental_treatments.c.patient_id)

dental_treatment_images = Table(
    "dental_treatment_images",
    metadata,
    Column("id", String, primary_key=True),
    Column(
        "dental_treatment_id",
        String,
        ForeignKey("dental_treatments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column("tooth_number", Integer, nullable=False),
    Column("image_path", Text, nullable=False),
    Column("image_type", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("taken_date", String, nullable=True, server_default=_NOW),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_dental_treatment_images_treatment", dental_treatment_images.c.dental_treatment_id)

labs = Table(
    "labs",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("contact_info", Text, nullable=True),
    Column("address", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_labs_name", labs.c.name)

lab_orders = Table(
    "lab_orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("lab_id", String, ForeignKey("labs.id", ondelete="CASCADE"), nullable=False),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="SET NULL"), nullable=True),
    Column(
        "appointment_id",
        String,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column(
        "tooth_treatment_id",
        String,
        ForeignKey("tooth_treatments.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column("tooth_number", Integer, nullable=True),
    Column("service_name", String, nullable=False),
    Column("cost", Float, nullable=False),
    Column("order_date", String, nullable=False),
    Column("expected_delivery_date", String, nullable=True),
    Column("actual_delivery_date", String, nullable=True),
    Column("status", String, nullable=False),
    Column("notes", Text, nullable=True),
    Column("paid_amount", Float, nullable=True, server_default=text("0")),
    Column("remaining_balance", Float, nullable=True),
    Column("priority", Integer, nullable=True, server_default=text("1")),
    Column("lab_instructions", Text, nullable=True),
    Column("material_type", String, nullable=True),
    Column("color_shade", String, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
    CheckConstraint(_in_list("status", LAB_ORDER_STATUSES)),
)
Index("idx_lab_orders_lab", lab_orders.c.lab_id)
Index("idx_lab_orders_patient", lab_orders.c.patient_id)
Index("idx_lab_orders_date", lab_orders.c.order_date)
Index("idx_lab_orders_status", lab_orders.c.status)
Index("idx_lab_orders_service", lab_orders.c.service_name)
Index("idx_lab_orders_lab_date", lab_orders.c.lab_id, lab_orders.c.order_date)
Index("idx_lab_orders_patient_date", lab_orders.c.patient_id, lab_orders.c.order_date)
Index("idx_lab_orders_status_date", lab_orders.c.status, lab_orders.c.order_date)
Index("idx_lab_orders_tooth_treatment", lab_orders.c.tooth_treatment_id)

medications = Table(
    "medications",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("instructions", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_medications_name", medications.c.name)

prescriptions = Table(
    "prescriptions",
    metadata,
    Column("id", String, primary_key=True),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    Column(
        "appointment_id",
        String,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column(
        "tooth_treatment_id",
        String,
        ForeignKey("tooth_treatments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("prescription_date", String, nullable=False),
    Column("notes", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_prescriptions_patient", prescriptions.c.patient_id)

prescription_medications = Table(
    "prescription_medications",
    metadata,
    Column("id", String, primary_key=True),
    Column(
        "prescription_id",
        String,
        ForeignKey("prescriptions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "medication_id",
        String,
        ForeignKey("medications.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("dose", String, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
)
Index("idx_prescription_medications_prescription", prescription_medications.c.prescription_id)

clinic_needs = Table(
    "clinic_needs",
    metadata,
    Column("id", String, primary_key=True),
    Column("serial_number", String, nullable=False, unique=True),
    Column("need_name", String, nullable=False),
    Column("quantity", Integer, nullable=False, server_default=text("1")),
    Column("price", Float, nullable=False, server_default=text("0")),
    Column("description", Text, nullable=True),
    Column("category", String, nullable=True),
    Column("priority", String, nullable=True, server_default=text("'medium'")),
    Column("status", String, nullable=True, server_default=text("'pending'")),
    Column("supplier", String, nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_clinic_needs_name", clinic_needs.c.need_name)
Index("idx_clinic_needs_status", clinic_needs.c.status)
Index("idx_clinic_needs_priority", clinic_needs.c.priority)

clinic_expenses = Table(
    "clinic_expenses",
    metadata,
    Column("id", String, primary_key=True),
    Column("expense_name", String, nullable=False),
    Column("amount", Float, nullable=False),
    Column("expense_type", String, nullable=False),
    Column("category", String, nullable=True),
    Column("description", Text, nullable=True),
    Column("payment_method", String, nullable=False),
    Column("payment_date", String, nullable=False),
    Column("due_date", String, nullable=True),
    Column("is_recurring", Boolean, nullable=True, server_default=text("0")),
    Column("recurring_frequency", String, nullable=True),
    Column("recurring_end_date", String, nullable=True),
    Column("status", String, nullable=True, server_default=text("'pending'")),
    Column("receipt_number", String, nullable=True),
    Column("vendor", String, nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
)
Index("idx_clinic_expenses_type", clinic_expenses.c.expense_type)
Index("idx_clinic_expenses_date", clinic_expenses.c.payment_date)

treatment_sessions = Table(
    "treatment_sessions",
    metadata,
    Column("id", String, primary_key=True),
    Column(
        "tooth_treatment_id",
        String,
        ForeignKey("tooth_treatments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("session_number", Integer, nullable=False),
    Column("session_type", String, nullable=False),
    Column("session_title", String, nullable=False),
    Column("session_description", Text, nullable=True),
    Column("session_date", String, nullable=False),
    Column("session_status", String, nullable=True, server_default=text("'planned'")),
    Column("duration_minutes", Integer, nullable=True, server_default=text("30")),
    Column("cost", Float, nullable=True, server_default=text("0")),
    Column("notes", Text, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
    UniqueConstraint("tooth_treatment_id", "session_number"),
)
Index("idx_treatment_sessions_treatment", treatment_sessions.c.tooth_treatment_id)
Index("idx_treatment_sessions_date", treatment_sessions.c.session_date)

smart_alerts = Table(
    "smart_alerts",
    metadata,
    Column("id", String, primary_key=True),
    Column("type", String, nullable=False),
    Column("priority", String, nullable=False),
    Column("title", String, nullable=False),
    Column("description", Text, nullable=False),
    Column("patient_id", String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=True),
    Column("patient_name", String, nullable=True),
    Column("related_data", Text, nullable=True),
    Column("action_required", Boolean, nullable=True, server_default=text("0")),
    Column("due_date", String, nullable=True),
    Column("is_read", Boolean, nullable=True, server_default=text("0")),
    Column("is_dismissed", Boolean, nullable=True, server_default=text("0")),
    Column("snooze_until", String, nullable=True),
    Column("created_at", String, nullable=True, server_default=_NOW),
    Column("updated_at", String, nullable=True, server_default=_NOW),
    CheckConstraint(_in_list("type", ALERT_TYPES)),
    CheckConstraint(_in_list("priority", ALERT_PRIORITIES)),
)
Index("idx_smart_alerts_type", smart_alerts.c.type)
Index("idx_smart_alerts_priority", smart_alerts.c.priority)
Index("idx_smart_alerts_patient_id", smart_alerts.c.patient_id)
Index("idx_smart_alerts_is_dismissed", smart_alerts.c.is_dismissed)
Index("idx_smart_alerts_snooze_until", smart_alerts.c.snooze_until)
Index("idx_smart_alerts_created_at", smart_alerts.c.created_at)

TABLES_BY_NAME: Mapping[str, Table] = {
    table.name: table
    for table in (
        patients,
        settings,
        appointments,
        payments,
        installment_payments,
        patient_images,
        tooth_treatments,
        tooth_treatment_images,
        dental_treatments,
        dental_treatment_images,
        labs,
        lab_orders,
        medications,
        prescriptions,
        prescription_medications,
        clinic_needs,
        clinic_expenses,
        treatment_sessions,
        smart_alerts,
    )
}

# Tables every installation has had since the first release.
BASE_TABLES: Sequence[str] = ("patients", "settings", "appointments", "payments")

_DIALECT = sqlite_dialect.dialect()


def table_ddl(table: Table, *, name: Optional[str] = None, if_not_exists: bool = False) -> str:
    """Return the ``CREATE TABLE`` statement for ``table``.

    ``name`` renders the same definition under another table name, which the
    structural rebuild uses for its replacement table.
    """

    ddl = str(CreateTable(table, if_not_exists=if_not_exists).compile(dialect=_DIALECT)).strip()
    if name is not None and name != table.name:
        ddl = re.sub(
            r"^CREATE TABLE (IF NOT EXISTS )?\"?%s\"?" % re.escape(table.name),
            lambda m: f"CREATE TABLE {m.group(1) or ''}{name}",
            ddl,
            count=1,
        )
    return ddl


def index_ddl(index: Index) -> str:
    return str(CreateIndex(index, if_not_exists=True).compile(dialect=_DIALECT)).strip()


def table_columns(conn: sqlite3.Connection, name: str) -> List[str]:
    return [row[1] for row in conn.execute(f'PRAGMA table_info("{name}")')]


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone()
    return row is not None


def create_indexes(conn: sqlite3.Connection, table: Table) -> List[str]:
    """Create the indexes of ``table`` whose columns are present.

    Indexes over columns that an older installation still lacks are skipped;
    the guard creates them once the column has been added.
    """

    present = set(table_columns(conn, table.name))
    created: List[str] = []
    for index in sorted(table.indexes, key=lambda idx: idx.name or ""):
        columns = [column.name for column in index.columns]
        if not set(columns) <= present:
            logger.debug("index_skipped_missing_columns", index=index.name, columns=columns)
            continue
        conn.execute(index_ddl(index))
        created.append(str(index.name))
    return created


def create_tables(conn: sqlite3.Connection, *tables: Table) -> None:
    """Create ``tables`` (and their indexes) using the shared metadata."""

    for table in tables:
        conn.execute(table_ddl(table, if_not_exists=True))
        create_indexes(conn, table)


def require_tables(conn: sqlite3.Connection, table_names: Iterable[str]) -> None:
    """Ensure the tables named in ``table_names`` exist."""

    tables = [TABLES_BY_NAME[name] for name in table_names if name in TABLES_BY_NAME]
    create_tables(conn, *tables)


__all__ = [
    "metadata",
    "patients",
    "settings",
    "appointments",
    "payments",
    "installment_payments",
    "patient_images",
    "tooth_treatments",
    "tooth_treatment_images",
    "dental_treatments",
    "dental_treatment_images",
    "labs",
    "lab_orders",
    "medications",
    "prescriptions",
    "prescription_medications",
    "clinic_needs",
    "clinic_expenses",
    "treatment_sessions",
    "smart_alerts",
    "ALERT_PRIORITIES",
    "ALERT_TYPES",
    "BASE_TABLES",
    "FDI_CHECK_SQL",
    "FDI_RANGES",
    "LAB_ORDER_STATUSES",
    "SESSION_STATUSES",
    "TABLES_BY_NAME",
    "TREATMENT_STATUSES",
    "create_indexes",
    "create_tables",
    "index_ddl",
    "is_valid_tooth_number",
    "require_tables",
    "table_columns",
    "table_ddl",
    "table_exists",
]
