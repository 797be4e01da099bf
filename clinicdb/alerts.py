"""Smart alerts with duplicate suppression and snoozing."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.records import Service, insert_row, new_id, update_row, write_scope
from clinicdb.schemas import Alert, AlertCreate, AlertUpdate, related_from_json, related_to_json, validate
from clinicdb.time_utils import iso_now, to_iso

logger = structlog.get_logger(__name__)

_RELATED_KEYS = {
    "appointment": ("appointment_id", "appointmentId"),
    "payment": ("payment_id", "paymentId"),
    "treatment": ("treatment_id", "treatmentId"),
    "prescription": ("prescription_id", "prescriptionId"),
    "lab_order": ("lab_order_id", "labOrderId"),
    "inventory": ("inventory_id", "inventoryId"),
}

_ACTIVE_ORDER = """
    ORDER BY CASE priority WHEN 'high' THEN 1 WHEN 'medium' THEN 2 WHEN 'low' THEN 3 ELSE 4 END,
             is_read ASC,
             created_at DESC
"""


def _row_to_alert(row: Mapping[str, Any]) -> Alert:
    return Alert(
        id=row["id"],
        type=row["type"],
        priority=row["priority"],
        title=row["title"],
        description=row["description"] or "",
        patient_id=row["patient_id"],
        patient_name=row["patient_name"],
        related=related_from_json(row["type"], row["related_data"]),
        action_required=bool(row["action_required"]),
        due_date=row["due_date"],
        is_read=bool(row["is_read"]),
        is_dismissed=bool(row["is_dismissed"]),
        snooze_until=row["snooze_until"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class AlertService(Service):
    """Persist smart alerts.

    Creating an alert that duplicates a live one (same type, patient and
    title, not dismissed) returns the stored alert instead of inserting.
    """

    groups = ("smart_alerts",)

    def _fetch(self, alert_id: str) -> Optional[Alert]:
        row = self._db.execute("SELECT * FROM smart_alerts WHERE id = ?", (alert_id,)).fetchone()
        return _row_to_alert(row) if row is not None else None

    def _find_duplicate(self, data: AlertCreate) -> Optional[Alert]:
        row = self._db.execute(
            """
            SELECT * FROM smart_alerts
             WHERE type = ? AND patient_id IS ? AND title = ? AND is_dismissed = 0
             ORDER BY created_at DESC
             LIMIT 1
            """,
            (data.type, data.patient_id, data.title),
        ).fetchone()
        return _row_to_alert(row) if row is not None else None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, alert_id: str) -> Optional[Alert]:
        self._ensure_tables()
        return self._fetch(alert_id)

    def list_all(self) -> List[Alert]:
        rows = self.db.execute("SELECT * FROM smart_alerts " + _ACTIVE_ORDER).fetchall()
        return [_row_to_alert(row) for row in rows]

    def list_active(self, now: Optional[Union[datetime, str]] = None) -> List[Alert]:
        """Return alerts to show: not dismissed and not snoozed.

        Elapsed snoozes are cleared first.
        """

        self.clear_expired_snoozes(now)
        rows = self._db.execute(
            "SELECT * FROM smart_alerts WHERE is_dismissed = 0 AND snooze_until IS NULL " + _ACTIVE_ORDER
        ).fetchall()
        return [_row_to_alert(row) for row in rows]

    def list_by_patient(self, patient_id: str) -> List[Alert]:
        rows = self.db.execute(
            "SELECT * FROM smart_alerts WHERE patient_id = ? " + _ACTIVE_ORDER, (patient_id,)
        ).fetchall()
        return [_row_to_alert(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, payload: Union[AlertCreate, Mapping[str, Any]]) -> Alert:
        data = validate(AlertCreate, payload)
        db = self.db

        if data.id is not None:
            existing = self._fetch(data.id)
            if existing is not None:
                logger.debug("alert_exists", alert_id=data.id)
                return existing
        duplicate = self._find_duplicate(data)
        if duplicate is not None:
            logger.debug("alert_duplicate_suppressed", alert_id=duplicate.id, type=data.type)
            return duplicate

        alert_id = data.id or new_id()
        now = iso_now()
        values = data.model_dump(exclude={"id", "related"})
        values.update(
            id=alert_id,
            related_data=related_to_json(data.related),
            created_at=now,
            updated_at=now,
        )
        try:
            with write_scope(db):
                insert_row(db, "smart_alerts", values)
        except ConstraintViolation as exc:
            cause = exc.__cause__
            if isinstance(cause, sqlite3.IntegrityError) and self._fetch(alert_id) is not None:
                logger.debug("alert_insert_race", alert_id=alert_id)
                return self._fetch(alert_id)  # type: ignore[return-value]
            raise
        logger.info("alert_created", alert_id=alert_id, type=data.type, priority=data.priority)
        return self._fetch(alert_id)  # type: ignore[return-value]

    def update(self, alert_id: str, payload: Union[AlertUpdate, Mapping[str, Any]]) -> Alert:
        data = validate(AlertUpdate, payload)
        db = self.db
        values: Dict[str, Any] = data.model_dump(exclude_unset=True)
        values["updated_at"] = iso_now()
        with write_scope(db):
            if not update_row(db, "smart_alerts", alert_id, values):
                raise NotFound(detail=f"smart_alerts:{alert_id}")
        return self._fetch(alert_id)  # type: ignore[return-value]

    def mark_read(self, alert_id: str) -> Alert:
        return self.update(alert_id, {"is_read": True})

    def dismiss(self, alert_id: str) -> Alert:
        return self.update(alert_id, {"is_dismissed": True})

    def snooze(self, alert_id: str, until: Union[datetime, str]) -> Alert:
        return self.update(alert_id, {"snooze_until": to_iso(until)})

    def delete(self, alert_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM smart_alerts WHERE id = ?", (alert_id,)).rowcount == 0:
                raise NotFound(detail=f"smart_alerts:{alert_id}")

    def _delete_where(self, where: str, params: tuple, event: str, **context: Any) -> int:
        db = self.db
        with write_scope(db):
            deleted = db.execute(f"DELETE FROM smart_alerts WHERE {where}", params).rowcount
        logger.info(event, count=deleted, **context)
        return deleted

    def delete_by_patient(self, patient_id: str) -> int:
        return self._delete_where("patient_id = ?", (patient_id,), "alerts_deleted_by_patient", patient_id=patient_id)

    def delete_by_type(self, alert_type: str, patient_id: Optional[str] = None) -> int:
        if patient_id is None:
            return self._delete_where("type = ?", (alert_type,), "alerts_deleted_by_type", type=alert_type)
        return self._delete_where(
            "type = ? AND patient_id = ?",
            (alert_type, patient_id),
            "alerts_deleted_by_type",
            type=alert_type,
            patient_id=patient_id,
        )

    def delete_by_related(self, kind: str, related_id: str) -> int:
        """Delete alerts whose related data points at ``related_id`` of ``kind``."""

        try:
            key, legacy_key = _RELATED_KEYS[kind]
        except KeyError:
            raise ValueError(f"Unknown related kind {kind!r}") from None
        where = (
            "CASE WHEN json_valid(related_data) THEN "
            f"COALESCE(json_extract(related_data, '$.{key}'), json_extract(related_data, '$.{legacy_key}')) "
            "END = ?"
        )
        return self._delete_where(where, (related_id,), "alerts_deleted_by_related", kind=kind, related_id=related_id)

    def clear_dismissed(self) -> int:
        return self._delete_where("is_dismissed = 1", (), "dismissed_alerts_cleared")

    def clear_expired_snoozes(self, now: Optional[Union[datetime, str]] = None) -> int:
        """Clear snoozes that have elapsed; returns the number of alerts woken."""

        db = self.db
        moment = to_iso(now) if now is not None else iso_now()
        with write_scope(db):
            woken = db.execute(
                """
                UPDATE smart_alerts SET snooze_until = NULL, updated_at = ?
                 WHERE snooze_until IS NOT NULL AND snooze_until <= ?
                """,
                (iso_now(), moment),
            ).rowcount
        if woken:
            logger.info("alert_snoozes_cleared", count=woken)
        return woken


__all__ = ["AlertService"]
