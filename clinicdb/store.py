"""Startup orchestration and the service facade used by the application."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, List, Optional

import structlog

from clinicdb import migrations, repair
from clinicdb.alerts import AlertService
from clinicdb.appointments import AppointmentService
from clinicdb.clinic_expenses import ClinicExpenseService
from clinicdb.clinic_needs import ClinicNeedService
from clinicdb.connection import ConnectionManager
from clinicdb.db.config import DatabaseSettings, get_database_settings
from clinicdb.errors import StartupReport, StepOutcome
from clinicdb.guard import SchemaGuard
from clinicdb.lab_orders import LabOrderService
from clinicdb.medications import MedicationService
from clinicdb.patients import PatientService
from clinicdb.payments import PaymentService
from clinicdb.records import Service
from clinicdb.sessions import TreatmentSessionService
from clinicdb.treatment_images import ToothTreatmentImageService
from clinicdb.treatments import ToothTreatmentService

logger = structlog.get_logger(__name__)


class ClinicStore:
    """Own the connection, bring the schema up to date and expose services."""

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        settings: Optional[DatabaseSettings] = None,
    ) -> None:
        self.manager = ConnectionManager(path, settings=settings)
        self.report = StartupReport()
        self._guard: Optional[SchemaGuard] = None
        self._services: List[Service] = []
        self.manager.on_reopen(self._rebind)

    @classmethod
    def from_settings(cls) -> "ClinicStore":
        return cls(settings=get_database_settings())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> StartupReport:
        """Open the database and run every schema maintenance step.

        Only :class:`~clinicdb.errors.IOFailure` escapes; schema problems are
        collected in the returned report.
        """

        conn = self.manager.open()
        report = StartupReport()
        report.steps.append(repair.migrate_legacy_patients(conn))
        report.steps.append(self._step("base_schema", migrations.ensure_base_schema, conn))
        try:
            report.extend(migrations.run_migrations(conn))
        except Exception as exc:  # noqa: BLE001 - reported, startup continues
            logger.warning("migration_runner_failed", error=str(exc))
            report.steps.append(StepOutcome.failed("migrations", exc))
        report.extend(repair.repair_drift(conn))

        self._guard = SchemaGuard(conn)
        report.extend(self._guard.ensure_all())
        self._build_services(conn)

        report.schema_version = migrations.current_version(conn)
        for failure in report.failures:
            logger.warning("startup_step_failed", step=failure.name, error=failure.error)
        logger.info(
            "clinic_store_started",
            path=str(self.manager.path),
            schema_version=report.schema_version,
            failures=len(report.failures),
        )
        self.report = report
        return report

    @staticmethod
    def _step(name: str, func: Any, conn: sqlite3.Connection) -> StepOutcome:
        try:
            func(conn)
        except Exception as exc:  # noqa: BLE001
            return StepOutcome.failed(name, exc)
        return StepOutcome(name=name)

    def _build_services(self, conn: sqlite3.Connection) -> None:
        guard = self._guard
        manager = self.manager
        self.patients = PatientService(conn, guard, manager=manager)
        self.treatments = ToothTreatmentService(conn, guard, manager=manager)
        self.payments = PaymentService(conn, guard, manager=manager)
        self.lab_orders = LabOrderService(conn, guard, manager=manager)
        self.alerts = AlertService(conn, guard, manager=manager)
        self.sessions = TreatmentSessionService(conn, guard, manager=manager)
        self.clinic_needs = ClinicNeedService(conn, guard, manager=manager)
        self.appointments = AppointmentService(conn, guard, manager=manager)
        self.medications = MedicationService(conn, guard, manager=manager)
        self.clinic_expenses = ClinicExpenseService(conn, guard, manager=manager)
        self.treatment_images = ToothTreatmentImageService(conn, guard, manager=manager)
        self._services = [
            self.patients,
            self.treatments,
            self.payments,
            self.lab_orders,
            self.alerts,
            self.sessions,
            self.clinic_needs,
            self.appointments,
            self.medications,
            self.clinic_expenses,
            self.treatment_images,
        ]

    def _rebind(self, conn: sqlite3.Connection) -> None:
        if self._guard is not None:
            self._guard.reset(conn)
        for service in self._services:
            service.update_connection(conn)

    def close(self) -> None:
        self.manager.close()

    def reinitialize(self) -> sqlite3.Connection:
        return self.manager.reinitialize()

    def is_healthy(self) -> bool:
        return self.manager.is_healthy()

    @property
    def connection(self) -> sqlite3.Connection:
        return self.manager.ensure_connection()

    @property
    def schema_version(self) -> int:
        return migrations.current_version(self.connection)

    def __enter__(self) -> "ClinicStore":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


__all__ = ["ClinicStore"]
