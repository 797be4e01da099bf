"""Payments and the balance bookkeeping that follows every payment write."""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb import balances
from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import PaymentCreate, PaymentUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)

_GENERAL_FIELDS = ("total_amount_due", "amount_paid", "remaining_balance")


def _require_linked(conn: sqlite3.Connection, table: str, entity_id: Optional[str]) -> None:
    if entity_id is None:
        return
    row = conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (entity_id,)).fetchone()
    if row is None:
        label = "treatment" if table == "tooth_treatments" else "lab order"
        raise ConstraintViolation(f"The linked {label} does not exist.", detail=f"{table}:{entity_id}")


def reconcile_links(
    conn: sqlite3.Connection,
    treatment_ids: Any = (),
    lab_order_ids: Any = (),
) -> None:
    """Recompute balances for every entity touched by a payment write."""

    for treatment_id in {item for item in treatment_ids if item}:
        balances.reconcile_treatment(conn, treatment_id)
    for lab_order_id in {item for item in lab_order_ids if item}:
        balances.reconcile_lab_order(conn, lab_order_id)


class PaymentService(Service):
    """Payment CRUD; callers never write balance fields of linked payments."""

    groups = ("payments", "tooth_treatments", "lab_orders")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, payment_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "payments", payment_id)

    def list_by_patient(self, patient_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            "SELECT * FROM payments WHERE patient_id = ? ORDER BY payment_date DESC, created_at DESC",
            (patient_id,),
        )

    def list_by_treatment(self, treatment_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            """
            SELECT p.*, tt.treatment_type AS treatment_name, tt.tooth_number AS tooth_number
              FROM payments p
              LEFT JOIN tooth_treatments tt ON tt.id = p.tooth_treatment_id
             WHERE p.tooth_treatment_id = ?
             ORDER BY p.payment_date DESC, p.created_at DESC
            """,
            (treatment_id,),
        )

    def list_by_lab_order(self, lab_order_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            "SELECT * FROM payments WHERE lab_order_id = ? ORDER BY payment_date DESC, created_at DESC",
            (lab_order_id,),
        )

    def summary_for_treatment(self, treatment_id: str) -> balances.PaymentSummary:
        return balances.payment_summary(self.db, treatment_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, payload: Union[PaymentCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(PaymentCreate, payload)
        db = self.db
        now = iso_now()
        payment_id = data.id or new_id()

        values: Dict[str, Any] = data.model_dump(exclude={"id", *_GENERAL_FIELDS})
        values["total_amount"] = data.total_amount if data.total_amount is not None else data.amount
        if not (data.tooth_treatment_id or data.lab_order_id):
            general = balances.general_balance(
                data.amount,
                data.total_amount_due,
                data.amount_paid,
                data.remaining_balance,
                total_amount=values["total_amount"],
            )
            values.update(
                total_amount_due=general.cost,
                amount_paid=general.paid,
                remaining_balance=general.remaining,
            )
        values.update(id=payment_id, created_at=now, updated_at=now)

        with write_scope(db):
            _require_linked(db, "tooth_treatments", data.tooth_treatment_id)
            _require_linked(db, "lab_orders", data.lab_order_id)
            insert_row(db, "payments", values)
            reconcile_links(db, [data.tooth_treatment_id], [data.lab_order_id])

        logger.info(
            "payment_created",
            payment_id=payment_id,
            patient_id=data.patient_id,
            tooth_treatment_id=data.tooth_treatment_id,
            lab_order_id=data.lab_order_id,
        )
        return require_row(db, "payments", payment_id)

    def update(self, payment_id: str, payload: Union[PaymentUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(PaymentUpdate, payload)
        db = self.db
        changes = data.model_dump(exclude_unset=True)

        with write_scope(db):
            current = require_row(db, "payments", payment_id)
            merged = {**current, **changes}
            if merged.get("tooth_treatment_id") and merged.get("lab_order_id"):
                raise ConstraintViolation("A payment links to a treatment or a lab order, not both.")
            _require_linked(db, "tooth_treatments", changes.get("tooth_treatment_id"))
            _require_linked(db, "lab_orders", changes.get("lab_order_id"))

            values = {key: value for key, value in changes.items() if key not in _GENERAL_FIELDS}
            if "amount" in changes and "total_amount" not in changes:
                values["total_amount"] = changes["amount"]
            if not merged.get("tooth_treatment_id"):
                values.update(
                    treatment_total_cost=None,
                    treatment_total_paid=None,
                    treatment_remaining_balance=None,
                )
            if merged.get("tooth_treatment_id") or merged.get("lab_order_id"):
                if not merged.get("lab_order_id"):
                    values.update(total_amount_due=None, amount_paid=None, remaining_balance=None)
            else:
                # A stored triple that came from a linked entity is not this payment's own.
                was_linked = current.get("tooth_treatment_id") or current.get("lab_order_id")
                stored_due = None if was_linked else current.get("total_amount_due")
                general = balances.general_balance(
                    merged["amount"],
                    changes.get("total_amount_due", stored_due),
                    changes.get("amount_paid"),
                    changes.get("remaining_balance"),
                    total_amount=values.get("total_amount", current.get("total_amount")),
                )
                values.update(
                    total_amount_due=general.cost,
                    amount_paid=general.paid,
                    remaining_balance=general.remaining,
                )
            values["updated_at"] = iso_now()
            update_row(db, "payments", payment_id, values)
            reconcile_links(
                db,
                [current.get("tooth_treatment_id"), merged.get("tooth_treatment_id")],
                [current.get("lab_order_id"), merged.get("lab_order_id")],
            )

        logger.info("payment_updated", payment_id=payment_id)
        return require_row(db, "payments", payment_id)

    def delete(self, payment_id: str) -> None:
        db = self.db
        with write_scope(db):
            current = fetch_row(db, "payments", payment_id)
            if current is None:
                raise NotFound(detail=f"payments:{payment_id}")
            db.execute("DELETE FROM payments WHERE id = ?", (payment_id,))
            reconcile_links(db, [current.get("tooth_treatment_id")], [current.get("lab_order_id")])
        logger.info("payment_deleted", payment_id=payment_id)

    def delete_by_treatment(self, treatment_id: str) -> int:
        db = self.db
        with write_scope(db):
            deleted = db.execute(
                "DELETE FROM payments WHERE tooth_treatment_id = ?", (treatment_id,)
            ).rowcount
        logger.info("treatment_payments_deleted", treatment_id=treatment_id, count=deleted)
        return deleted


__all__ = ["PaymentService", "reconcile_links"]
