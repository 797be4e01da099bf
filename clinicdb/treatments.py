"""Tooth-level treatments and their per-tooth ordering.

Treatments for the same patient and tooth form a group whose ``priority``
values are always the dense sequence ``1..N``.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import structlog

from clinicdb import balances
from clinicdb.errors import ConstraintViolation, MalformedReorder
from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import ToothTreatmentCreate, ToothTreatmentUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)


def next_priority(conn: sqlite3.Connection, patient_id: str, tooth_number: int) -> int:
    row = conn.execute(
        "SELECT COALESCE(MAX(priority), 0) + 1 FROM tooth_treatments WHERE patient_id = ? AND tooth_number = ?",
        (patient_id, tooth_number),
    ).fetchone()
    return int(row[0])


def group_ids(conn: sqlite3.Connection, patient_id: str, tooth_number: int) -> List[str]:
    rows = conn.execute(
        """
        SELECT id FROM tooth_treatments
         WHERE patient_id = ? AND tooth_number = ?
         ORDER BY priority, created_at, id
        """,
        (patient_id, tooth_number),
    )
    return [row[0] for row in rows]


def _assign_priorities(conn: sqlite3.Connection, ordered_ids: Sequence[str], now: str) -> None:
    conn.executemany(
        "UPDATE tooth_treatments SET priority = ?, updated_at = ? WHERE id = ?",
        [(position, now, treatment_id) for position, treatment_id in enumerate(ordered_ids, start=1)],
    )


@dataclass
class TreatmentDeletion:
    """Rows removed together with a treatment."""

    treatment_id: str
    payments: int = 0
    lab_orders: int = 0
    lab_order_payments: int = 0


class ToothTreatmentService(Service):
    """CRUD and ordering for ``tooth_treatments``."""

    groups = ("tooth_treatments", "payments", "lab_orders")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, treatment_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "tooth_treatments", treatment_id)

    def list_by_patient(self, patient_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            "SELECT * FROM tooth_treatments WHERE patient_id = ? ORDER BY tooth_number, priority",
            (patient_id,),
        )

    def list_by_tooth(self, patient_id: str, tooth_number: int) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            "SELECT * FROM tooth_treatments WHERE patient_id = ? AND tooth_number = ? ORDER BY priority",
            (patient_id, tooth_number),
        )

    def payment_summary(self, treatment_id: str) -> balances.PaymentSummary:
        return balances.payment_summary(self.db, treatment_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, payload: Union[ToothTreatmentCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        """Insert a treatment at the end of its tooth group.

        An explicit ``priority`` must name that next free position; other
        positions are reached through :meth:`reorder`.
        """

        data = validate(ToothTreatmentCreate, payload)
        db = self.db
        now = iso_now()
        treatment_id = data.id or new_id()
        values = data.model_dump(exclude={"id", "priority"})

        with write_scope(db):
            priority = next_priority(db, data.patient_id, data.tooth_number)
            if data.priority is not None and data.priority != priority:
                raise ConstraintViolation(
                    "New treatments are added at the end of the tooth's list; reorder to move them.",
                    detail=f"priority {data.priority} requested, next is {priority}",
                )
            values.update(id=treatment_id, priority=priority, created_at=now, updated_at=now)
            insert_row(db, "tooth_treatments", values)

        logger.info(
            "tooth_treatment_created",
            treatment_id=treatment_id,
            patient_id=data.patient_id,
            tooth_number=data.tooth_number,
            priority=priority,
        )
        return require_row(db, "tooth_treatments", treatment_id)

    def update(
        self, treatment_id: str, payload: Union[ToothTreatmentUpdate, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        """Update a treatment; a changed cost re-reconciles its payments.

        Moving a treatment to another tooth appends it to that tooth's group
        and compacts the group it left.
        """

        data = validate(ToothTreatmentUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        now = iso_now()

        with write_scope(db):
            current = require_row(db, "tooth_treatments", treatment_id)
            moved = "tooth_number" in values and values["tooth_number"] != current["tooth_number"]
            if moved:
                values["priority"] = next_priority(db, current["patient_id"], values["tooth_number"])
            values["updated_at"] = now
            update_row(db, "tooth_treatments", treatment_id, values)
            if moved:
                self._compact(db, current["patient_id"], current["tooth_number"], now)
            if "cost" in values:
                balances.reconcile_treatment(db, treatment_id)

        return require_row(db, "tooth_treatments", treatment_id)

    def delete(self, treatment_id: str) -> TreatmentDeletion:
        """Delete a treatment with its payments and lab orders in one transaction."""

        db = self.db
        result = TreatmentDeletion(treatment_id=treatment_id)
        with write_scope(db):
            current = require_row(db, "tooth_treatments", treatment_id)
            lab_order_ids = [
                row[0]
                for row in db.execute(
                    "SELECT id FROM lab_orders WHERE tooth_treatment_id = ?", (treatment_id,)
                )
            ]
            for lab_order_id in lab_order_ids:
                result.lab_order_payments += db.execute(
                    "DELETE FROM payments WHERE lab_order_id = ?", (lab_order_id,)
                ).rowcount
            result.payments = db.execute(
                "DELETE FROM payments WHERE tooth_treatment_id = ?", (treatment_id,)
            ).rowcount
            result.lab_orders = db.execute(
                "DELETE FROM lab_orders WHERE tooth_treatment_id = ?", (treatment_id,)
            ).rowcount
            db.execute("DELETE FROM tooth_treatments WHERE id = ?", (treatment_id,))
            self._compact(db, current["patient_id"], current["tooth_number"], iso_now())

        logger.info(
            "tooth_treatment_deleted",
            treatment_id=treatment_id,
            payments=result.payments,
            lab_orders=result.lab_orders,
            lab_order_payments=result.lab_order_payments,
        )
        return result

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    def reorder(self, patient_id: str, tooth_number: int, ordered_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Rewrite the group's priorities to follow ``ordered_ids``.

        ``ordered_ids`` must contain every treatment of the group exactly
        once; otherwise :class:`MalformedReorder` is raised and nothing is
        changed.  Only ``priority`` and ``updated_at`` are written.
        """

        ordered = [str(item) for item in ordered_ids]
        db = self.db
        with write_scope(db):
            current = group_ids(db, patient_id, tooth_number)
            if len(set(ordered)) != len(ordered):
                raise MalformedReorder(detail="duplicate treatment ids")
            if set(ordered) != set(current):
                missing = sorted(set(current) - set(ordered))
                unknown = sorted(set(ordered) - set(current))
                raise MalformedReorder(detail=f"missing={missing} unknown={unknown}")
            if ordered:
                _assign_priorities(db, ordered, iso_now())

        logger.info(
            "tooth_treatments_reordered",
            patient_id=patient_id,
            tooth_number=tooth_number,
            count=len(ordered),
        )
        return self.list_by_tooth(patient_id, tooth_number)

    def normalize_priorities(self, patient_id: str, tooth_number: int) -> int:
        """Compact the group back to ``1..N``; returns the group size."""

        db = self.db
        with write_scope(db):
            return self._compact(db, patient_id, tooth_number, iso_now())

    @staticmethod
    def _compact(conn: sqlite3.Connection, patient_id: str, tooth_number: int, now: str) -> int:
        ids = group_ids(conn, patient_id, tooth_number)
        rows = conn.execute(
            "SELECT id, priority FROM tooth_treatments WHERE patient_id = ? AND tooth_number = ?",
            (patient_id, tooth_number),
        )
        current = {row[0]: row[1] for row in rows}
        changed = [
            (position, now, treatment_id)
            for position, treatment_id in enumerate(ids, start=1)
            if current.get(treatment_id) != position
        ]
        if changed:
            conn.executemany(
                "UPDATE tooth_treatments SET priority = ?, updated_at = ? WHERE id = ?", changed
            )
        return len(ids)


__all__ = [
    "ToothTreatmentService",
    "TreatmentDeletion",
    "group_ids",
    "next_priority",
]
