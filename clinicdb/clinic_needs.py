"""Clinic supply needs (items to order)."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb.balances import ZERO, to_money
from clinicdb.errors import NotFound
from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import ClinicNeedCreate, ClinicNeedUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)


@dataclass
class NeedStatistics:
    total: int = 0
    total_value: Decimal = ZERO
    by_status: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)


class ClinicNeedService(Service):
    groups = ("clinic_needs",)

    def _next_serial(self) -> str:
        rows = self._db.execute("SELECT serial_number FROM clinic_needs").fetchall()
        numbers = [int(row[0]) for row in rows if str(row[0]).isdigit()]
        return f"{(max(numbers) if numbers else 0) + 1:03d}"

    def get(self, need_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "clinic_needs", need_id)

    def list(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status is None:
            return fetch_all(self.db, "SELECT * FROM clinic_needs ORDER BY created_at DESC")
        return fetch_all(
            self.db,
            "SELECT * FROM clinic_needs WHERE status = ? ORDER BY created_at DESC",
            (status,),
        )

    def search(self, query: str) -> List[Dict[str, Any]]:
        term = f"%{query.strip()}%"
        return fetch_all(
            self.db,
            """
            SELECT * FROM clinic_needs
             WHERE need_name LIKE ? OR description LIKE ? OR category LIKE ? OR supplier LIKE ?
                OR serial_number LIKE ?
             ORDER BY created_at DESC
            """,
            (term, term, term, term, term),
        )

    def create(self, payload: Union[ClinicNeedCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(ClinicNeedCreate, payload)
        db = self.db
        now = iso_now()
        need_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        with write_scope(db):
            values.update(
                id=need_id,
                serial_number=data.serial_number or self._next_serial(),
                created_at=now,
                updated_at=now,
            )
            insert_row(db, "clinic_needs", values)
        logger.info("clinic_need_created", need_id=need_id, serial_number=values["serial_number"])
        return require_row(db, "clinic_needs", need_id)

    def update(self, need_id: str, payload: Union[ClinicNeedUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(ClinicNeedUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        values["updated_at"] = iso_now()
        with write_scope(db):
            if not update_row(db, "clinic_needs", need_id, values):
                raise NotFound(detail=f"clinic_needs:{need_id}")
        return require_row(db, "clinic_needs", need_id)

    def delete(self, need_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM clinic_needs WHERE id = ?", (need_id,)).rowcount == 0:
                raise NotFound(detail=f"clinic_needs:{need_id}")

    def statistics(self) -> NeedStatistics:
        stats = NeedStatistics()
        for row in self.db.execute("SELECT quantity, price, status, priority FROM clinic_needs"):
            stats.total += 1
            stats.total_value += to_money(row["price"]) * int(row["quantity"] or 0)
            stats.by_status[row["status"]] = stats.by_status.get(row["status"], 0) + 1
            stats.by_priority[row["priority"]] = stats.by_priority.get(row["priority"], 0) + 1
        return stats


__all__ = ["ClinicNeedService", "NeedStatistics"]
