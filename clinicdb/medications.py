"""Medication catalogue and patient prescriptions."""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import structlog

from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import (
    MedicationCreate,
    MedicationUpdate,
    PrescribedMedication,
    PrescriptionCreate,
    PrescriptionUpdate,
    validate,
)
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)

_PRESCRIPTION_SELECT = """
    SELECT rx.*, pt.full_name AS patient_name, a.title AS appointment_title
      FROM prescriptions rx
      LEFT JOIN patients pt ON pt.id = rx.patient_id
      LEFT JOIN appointments a ON a.id = rx.appointment_id
"""


def _insert_items(
    conn: sqlite3.Connection, prescription_id: str, items: Sequence[PrescribedMedication], now: str
) -> None:
    for item in items:
        if fetch_row(conn, "medications", item.medication_id) is None:
            raise ConstraintViolation(
                "The prescribed medication does not exist.", detail=f"medications:{item.medication_id}"
            )
        insert_row(
            conn,
            "prescription_medications",
            {
                "id": new_id(),
                "prescription_id": prescription_id,
                "medication_id": item.medication_id,
                "dose": item.dose,
                "created_at": now,
            },
        )


class MedicationService(Service):
    """Medications plus the prescriptions that reference them.

    Prescriptions are returned with their ``medications`` list attached.
    """

    groups = ("patients", "appointments", "tooth_treatments", "medications")

    # ------------------------------------------------------------------
    # Medications
    # ------------------------------------------------------------------
    def get_medication(self, medication_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "medications", medication_id)

    def list_medications(self) -> List[Dict[str, Any]]:
        return fetch_all(self.db, "SELECT * FROM medications ORDER BY name")

    def search_medications(self, query: str) -> List[Dict[str, Any]]:
        term = f"%{query.strip()}%"
        return fetch_all(
            self.db,
            "SELECT * FROM medications WHERE name LIKE ? OR instructions LIKE ? ORDER BY name",
            (term, term),
        )

    def create_medication(self, payload: Union[MedicationCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(MedicationCreate, payload)
        db = self.db
        now = iso_now()
        medication_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        values.update(id=medication_id, created_at=now, updated_at=now)
        with write_scope(db):
            insert_row(db, "medications", values)
        logger.info("medication_created", medication_id=medication_id)
        return require_row(db, "medications", medication_id)

    def update_medication(
        self, medication_id: str, payload: Union[MedicationUpdate, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        data = validate(MedicationUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        values["updated_at"] = iso_now()
        with write_scope(db):
            if not update_row(db, "medications", medication_id, values):
                raise NotFound(detail=f"medications:{medication_id}")
        return require_row(db, "medications", medication_id)

    def delete_medication(self, medication_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM medications WHERE id = ?", (medication_id,)).rowcount == 0:
                raise NotFound(detail=f"medications:{medication_id}")
        logger.info("medication_deleted", medication_id=medication_id)

    # ------------------------------------------------------------------
    # Prescriptions
    # ------------------------------------------------------------------
    def _with_items(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for row in rows:
            row["medications"] = fetch_all(
                self._db,
                """
                SELECT pm.*, m.name AS medication_name, m.instructions AS medication_instructions
                  FROM prescription_medications pm
                  LEFT JOIN medications m ON m.id = pm.medication_id
                 WHERE pm.prescription_id = ?
                 ORDER BY pm.created_at, pm.rowid
                """,
                (row["id"],),
            )
        return rows

    def get_prescription(self, prescription_id: str) -> Optional[Dict[str, Any]]:
        rows = fetch_all(self.db, _PRESCRIPTION_SELECT + " WHERE rx.id = ?", (prescription_id,))
        return self._with_items(rows)[0] if rows else None

    def list_prescriptions(self) -> List[Dict[str, Any]]:
        rows = fetch_all(self.db, _PRESCRIPTION_SELECT + " ORDER BY rx.prescription_date DESC")
        return self._with_items(rows)

    def list_prescriptions_by_patient(self, patient_id: str) -> List[Dict[str, Any]]:
        rows = fetch_all(
            self.db,
            _PRESCRIPTION_SELECT + " WHERE rx.patient_id = ? ORDER BY rx.prescription_date DESC",
            (patient_id,),
        )
        return self._with_items(rows)

    def search_prescriptions(self, query: str) -> List[Dict[str, Any]]:
        term = f"%{query.strip()}%"
        rows = fetch_all(
            self.db,
            _PRESCRIPTION_SELECT
            + """
             WHERE pt.full_name LIKE ? OR a.title LIKE ? OR rx.notes LIKE ?
             ORDER BY rx.prescription_date DESC
            """,
            (term, term, term),
        )
        return self._with_items(rows)

    def create_prescription(self, payload: Union[PrescriptionCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(PrescriptionCreate, payload)
        db = self.db
        now = iso_now()
        prescription_id = data.id or new_id()
        values = data.model_dump(exclude={"id", "medications"})
        values.update(id=prescription_id, created_at=now, updated_at=now)

        with write_scope(db):
            insert_row(db, "prescriptions", values)
            _insert_items(db, prescription_id, data.medications, now)

        logger.info(
            "prescription_created",
            prescription_id=prescription_id,
            patient_id=data.patient_id,
            medications=len(data.medications),
        )
        return self.get_prescription(prescription_id)  # type: ignore[return-value]

    def update_prescription(
        self, prescription_id: str, payload: Union[PrescriptionUpdate, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        data = validate(PrescriptionUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True, exclude={"medications"})
        values["updated_at"] = now = iso_now()

        with write_scope(db):
            if not update_row(db, "prescriptions", prescription_id, values):
                raise NotFound(detail=f"prescriptions:{prescription_id}")
            if data.medications is not None:
                db.execute("DELETE FROM prescription_medications WHERE prescription_id = ?", (prescription_id,))
                _insert_items(db, prescription_id, data.medications, now)

        logger.info("prescription_updated", prescription_id=prescription_id)
        return self.get_prescription(prescription_id)  # type: ignore[return-value]

    def delete_prescription(self, prescription_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM prescriptions WHERE id = ?", (prescription_id,)).rowcount == 0:
                raise NotFound(detail=f"prescriptions:{prescription_id}")
        logger.info("prescription_deleted", prescription_id=prescription_id)


__all__ = ["MedicationService"]
