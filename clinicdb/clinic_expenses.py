"""Clinic running expenses (salaries, rent, supplies and the like)."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb.balances import ZERO, to_money
from clinicdb.errors import ConstraintViolation, NotFound
from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import ClinicExpenseCreate, ClinicExpenseUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)

_ORDER = " ORDER BY payment_date DESC, created_at DESC"


class ClinicExpenseService(Service):
    groups = ("clinic_expenses",)

    def get(self, expense_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "clinic_expenses", expense_id)

    def list(self, expense_type: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        clauses = []
        params: List[Any] = []
        if expense_type is not None:
            clauses.append("expense_type = ?")
            params.append(expense_type)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return fetch_all(self.db, "SELECT * FROM clinic_expenses" + where + _ORDER, params)

    def list_recurring(self) -> List[Dict[str, Any]]:
        return fetch_all(self.db, "SELECT * FROM clinic_expenses WHERE is_recurring = 1" + _ORDER)

    def search(self, query: str) -> List[Dict[str, Any]]:
        term = f"%{query.strip()}%"
        return fetch_all(
            self.db,
            """
            SELECT * FROM clinic_expenses
             WHERE expense_name LIKE ? OR description LIKE ? OR vendor LIKE ? OR notes LIKE ?
            """
            + _ORDER,
            (term, term, term, term),
        )

    def total(self, status: Optional[str] = None) -> Decimal:
        """Sum of expense amounts, optionally for one status."""

        rows = self.list(status=status)
        return sum((to_money(row["amount"]) for row in rows), ZERO)

    def create(self, payload: Union[ClinicExpenseCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(ClinicExpenseCreate, payload)
        db = self.db
        now = iso_now()
        expense_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        values.update(id=expense_id, created_at=now, updated_at=now)
        with write_scope(db):
            insert_row(db, "clinic_expenses", values)
        logger.info(
            "clinic_expense_created",
            expense_id=expense_id,
            expense_type=data.expense_type,
            amount=str(data.amount),
        )
        return require_row(db, "clinic_expenses", expense_id)

    def update(
        self, expense_id: str, payload: Union[ClinicExpenseUpdate, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        data = validate(ClinicExpenseUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        with write_scope(db):
            current = require_row(db, "clinic_expenses", expense_id)
            merged = {**current, **values}
            if merged.get("is_recurring") and not merged.get("recurring_frequency"):
                raise ConstraintViolation("A recurring expense needs a frequency.")
            values["updated_at"] = iso_now()
            update_row(db, "clinic_expenses", expense_id, values)
        return require_row(db, "clinic_expenses", expense_id)

    def delete(self, expense_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM clinic_expenses WHERE id = ?", (expense_id,)).rowcount == 0:
                raise NotFound(detail=f"clinic_expenses:{expense_id}")
        logger.info("clinic_expense_deleted", expense_id=expense_id)


__all__ = ["ClinicExpenseService"]
