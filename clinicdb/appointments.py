"""Appointments and the double-booking check that guards every time change."""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.records import Service, fetch_all, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import AppointmentCreate, AppointmentUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)

CONFLICT_MESSAGE = "يوجد موعد آخر في نفس الوقت المحدد. يرجى اختيار وقت آخر."

_SELECT = """
    SELECT a.*, p.full_name AS patient_name
      FROM appointments a
      LEFT JOIN patients p ON p.id = a.patient_id
"""


def has_conflict(
    conn: sqlite3.Connection,
    start_time: str,
    end_time: str,
    exclude_id: Optional[str] = None,
) -> bool:
    """Return ``True`` when a non-cancelled appointment overlaps the range.

    Ranges are half-open, so back-to-back appointments do not conflict.
    """

    sql = """
        SELECT 1 FROM appointments
         WHERE status != 'cancelled'
           AND start_time < ? AND end_time > ?
    """
    params: List[Any] = [end_time, start_time]
    if exclude_id is not None:
        sql += " AND id != ?"
        params.append(exclude_id)
    return conn.execute(sql + " LIMIT 1", params).fetchone() is not None


class AppointmentService(Service):
    groups = ("patients", "appointments")

    def get(self, appointment_id: str) -> Optional[Dict[str, Any]]:
        rows = fetch_all(self.db, _SELECT + " WHERE a.id = ?", (appointment_id,))
        return rows[0] if rows else None

    def list(self) -> List[Dict[str, Any]]:
        return fetch_all(self.db, _SELECT + " ORDER BY a.start_time DESC")

    def list_by_patient(self, patient_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            _SELECT + " WHERE a.patient_id = ? ORDER BY a.start_time DESC",
            (patient_id,),
        )

    def search(self, query: str) -> List[Dict[str, Any]]:
        term = f"%{query.strip()}%"
        return fetch_all(
            self.db,
            _SELECT
            + """
             WHERE p.full_name LIKE ? OR a.title LIKE ? OR a.description LIKE ? OR a.notes LIKE ?
             ORDER BY a.start_time DESC
            """,
            (term, term, term, term),
        )

    def create(self, payload: Union[AppointmentCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(AppointmentCreate, payload)
        db = self.db
        now = iso_now()
        appointment_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        values.update(id=appointment_id, created_at=now, updated_at=now)

        with write_scope(db):
            if data.status != "cancelled" and has_conflict(db, data.start_time, data.end_time):
                raise ConstraintViolation(CONFLICT_MESSAGE, detail=f"{data.start_time}/{data.end_time}")
            insert_row(db, "appointments", values)

        logger.info(
            "appointment_created",
            appointment_id=appointment_id,
            patient_id=data.patient_id,
            start_time=data.start_time,
        )
        return self.get(appointment_id)  # type: ignore[return-value]

    def update(
        self, appointment_id: str, payload: Union[AppointmentUpdate, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        data = validate(AppointmentUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)

        with write_scope(db):
            current = require_row(db, "appointments", appointment_id)
            merged = {**current, **values}
            if merged["end_time"] <= merged["start_time"]:
                raise ConstraintViolation("An appointment must end after it starts.")
            rescheduled = {"start_time", "end_time", "status"} & values.keys()
            if (
                rescheduled
                and merged.get("status") != "cancelled"
                and has_conflict(db, merged["start_time"], merged["end_time"], appointment_id)
            ):
                raise ConstraintViolation(CONFLICT_MESSAGE, detail=f"{merged['start_time']}/{merged['end_time']}")
            values["updated_at"] = iso_now()
            update_row(db, "appointments", appointment_id, values)

        logger.info("appointment_updated", appointment_id=appointment_id)
        return self.get(appointment_id)  # type: ignore[return-value]

    def delete(self, appointment_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM appointments WHERE id = ?", (appointment_id,)).rowcount == 0:
                raise NotFound(detail=f"appointments:{appointment_id}")
        logger.info("appointment_deleted", appointment_id=appointment_id)


__all__ = ["AppointmentService", "CONFLICT_MESSAGE", "has_conflict"]
