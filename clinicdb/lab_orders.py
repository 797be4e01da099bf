"""Dental labs and the orders sent to them."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb import balances
from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import LabCreate, LabOrderCreate, LabOrderUpdate, LabUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)

_ORDER_SELECT = """
    SELECT lo.*, l.name AS lab_name, p.full_name AS patient_name
      FROM lab_orders lo
      LEFT JOIN labs l ON l.id = lo.lab_id
      LEFT JOIN patients p ON p.id = lo.patient_id
"""


class LabOrderService(Service):
    """Labs and lab orders.

    ``paid_amount`` and ``remaining_balance`` of an order are derived from
    the payments linked to it and cannot be written by callers.
    """

    groups = ("lab_orders", "payments", "tooth_treatments")

    # ------------------------------------------------------------------
    # Labs
    # ------------------------------------------------------------------
    def create_lab(self, payload: Union[LabCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(LabCreate, payload)
        db = self.db
        now = iso_now()
        lab_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        values.update(id=lab_id, created_at=now, updated_at=now)
        with write_scope(db):
            insert_row(db, "labs", values)
        return require_row(db, "labs", lab_id)

    def get_lab(self, lab_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "labs", lab_id)

    def list_labs(self) -> List[Dict[str, Any]]:
        return fetch_all(self.db, "SELECT * FROM labs ORDER BY name")

    def update_lab(self, lab_id: str, payload: Union[LabUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(LabUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        values["updated_at"] = iso_now()
        with write_scope(db):
            if not update_row(db, "labs", lab_id, values):
                raise NotFound(detail=f"labs:{lab_id}")
        return require_row(db, "labs", lab_id)

    def delete_lab(self, lab_id: str) -> None:
        """Delete a lab; its orders (and their payments) go with it."""

        db = self.db
        with write_scope(db):
            db.execute(
                "DELETE FROM payments WHERE lab_order_id IN (SELECT id FROM lab_orders WHERE lab_id = ?)",
                (lab_id,),
            )
            if db.execute("DELETE FROM labs WHERE id = ?", (lab_id,)).rowcount == 0:
                raise NotFound(detail=f"labs:{lab_id}")
        logger.info("lab_deleted", lab_id=lab_id)

    # ------------------------------------------------------------------
    # Lab orders
    # ------------------------------------------------------------------
    def get(self, order_id: str) -> Optional[Dict[str, Any]]:
        rows = fetch_all(self.db, _ORDER_SELECT + " WHERE lo.id = ?", (order_id,))
        return rows[0] if rows else None

    def list(self) -> List[Dict[str, Any]]:
        return fetch_all(self.db, _ORDER_SELECT + " ORDER BY lo.order_date DESC, lo.created_at DESC")

    def list_by_patient(self, patient_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            _ORDER_SELECT + " WHERE lo.patient_id = ? ORDER BY lo.order_date DESC",
            (patient_id,),
        )

    def list_by_treatment(self, treatment_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            _ORDER_SELECT + " WHERE lo.tooth_treatment_id = ? ORDER BY lo.priority, lo.order_date",
            (treatment_id,),
        )

    def _fill_from_treatment(self, values: Dict[str, Any]) -> None:
        treatment_id = values.get("tooth_treatment_id")
        if not treatment_id:
            return
        row = self._db.execute(
            "SELECT patient_id, tooth_number FROM tooth_treatments WHERE id = ?", (treatment_id,)
        ).fetchone()
        if row is None:
            raise ConstraintViolation(
                "The linked treatment does not exist.", detail=f"tooth_treatments:{treatment_id}"
            )
        if not values.get("patient_id"):
            values["patient_id"] = row["patient_id"]
        if values.get("tooth_number") is None:
            values["tooth_number"] = row["tooth_number"]

    def create(self, payload: Union[LabOrderCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(LabOrderCreate, payload)
        db = self.db
        now = iso_now()
        order_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        values.update(id=order_id, paid_amount=0, remaining_balance=data.cost, created_at=now, updated_at=now)

        with write_scope(db):
            self._fill_from_treatment(values)
            insert_row(db, "lab_orders", values)
            balances.reconcile_lab_order(db, order_id)

        logger.info("lab_order_created", lab_order_id=order_id, lab_id=data.lab_id)
        return self.get(order_id) or require_row(db, "lab_orders", order_id)

    def update(self, order_id: str, payload: Union[LabOrderUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(LabOrderUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        values["updated_at"] = iso_now()

        with write_scope(db):
            if "tooth_treatment_id" in values:
                self._fill_from_treatment(values)
            if not update_row(db, "lab_orders", order_id, values):
                raise NotFound(detail=f"lab_orders:{order_id}")
            balances.reconcile_lab_order(db, order_id)

        logger.info("lab_order_updated", lab_order_id=order_id)
        return self.get(order_id) or require_row(db, "lab_orders", order_id)

    def delete(self, order_id: str) -> int:
        """Delete an order and its payments; returns the number of payments removed."""

        db = self.db
        with write_scope(db):
            removed = db.execute("DELETE FROM payments WHERE lab_order_id = ?", (order_id,)).rowcount
            if db.execute("DELETE FROM lab_orders WHERE id = ?", (order_id,)).rowcount == 0:
                raise NotFound(detail=f"lab_orders:{order_id}")
        logger.info("lab_order_deleted", lab_order_id=order_id, payments=removed)
        return removed

    def balance(self, order_id: str) -> balances.Balance:
        return balances.lab_order_balance(self.db, order_id)


__all__ = ["LabOrderService"]
