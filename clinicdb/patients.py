"""Patient records."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.errors import NotFound
from clinicdb.schemas import PatientCreate, PatientUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)


class PatientService(Service):
    """Create, look up and remove patients.

    Deleting a patient relies on ``ON DELETE CASCADE`` for treatments,
    payments, images and alerts.
    """

    groups = ("patients",)

    def create(self, payload: Union[PatientCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(PatientCreate, payload)
        db = self.db
        now = iso_now()
        patient_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        values.update(
            id=patient_id,
            serial_number=data.serial_number or patient_id[:8],
            date_added=now,
            created_at=now,
            updated_at=now,
        )
        with write_scope(db):
            insert_row(db, "patients", values)
        logger.info("patient_created", patient_id=patient_id)
        return require_row(db, "patients", patient_id)

    def get(self, patient_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "patients", patient_id)

    def list(self, search: Optional[str] = None) -> List[Dict[str, Any]]:
        if not search:
            return fetch_all(self.db, "SELECT * FROM patients ORDER BY date_added DESC, full_name")
        term = f"%{search.strip()}%"
        return fetch_all(
            self.db,
            """
            SELECT * FROM patients
             WHERE full_name LIKE ? OR phone LIKE ? OR serial_number LIKE ? OR email LIKE ?
             ORDER BY full_name
            """,
            (term, term, term, term),
        )

    def update(self, patient_id: str, payload: Union[PatientUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(PatientUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        values["updated_at"] = iso_now()
        with write_scope(db):
            if not update_row(db, "patients", patient_id, values):
                raise NotFound(detail=f"patients:{patient_id}")
        return require_row(db, "patients", patient_id)

    def delete(self, patient_id: str) -> None:
        db = self.db
        with write_scope(db):
            cursor = db.execute("DELETE FROM patients WHERE id = ?", (patient_id,))
            if cursor.rowcount == 0:
                raise NotFound(detail=f"patients:{patient_id}")
        logger.info("patient_deleted", patient_id=patient_id)


__all__ = ["PatientService"]
