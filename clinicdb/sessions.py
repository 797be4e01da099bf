"""Treatment sessions recorded against a tooth treatment."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from clinicdb.errors import NotFound
from clinicdb.records import Service, fetch_all, fetch_row, insert_row, new_id, require_row, update_row, write_scope
from clinicdb.schemas import TreatmentSessionCreate, TreatmentSessionUpdate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)


class TreatmentSessionService(Service):
    groups = ("treatment_sessions",)

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        return fetch_row(self.db, "treatment_sessions", session_id)

    def list_by_treatment(self, treatment_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            "SELECT * FROM treatment_sessions WHERE tooth_treatment_id = ? ORDER BY session_number",
            (treatment_id,),
        )

    def create(self, payload: Union[TreatmentSessionCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        """Add a session, numbering it after the treatment's last session."""

        data = validate(TreatmentSessionCreate, payload)
        db = self.db
        now = iso_now()
        session_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        with write_scope(db):
            row = db.execute(
                "SELECT COALESCE(MAX(session_number), 0) + 1 FROM treatment_sessions WHERE tooth_treatment_id = ?",
                (data.tooth_treatment_id,),
            ).fetchone()
            values.update(id=session_id, session_number=int(row[0]), created_at=now, updated_at=now)
            insert_row(db, "treatment_sessions", values)
        logger.info(
            "treatment_session_created",
            session_id=session_id,
            tooth_treatment_id=data.tooth_treatment_id,
            session_number=values["session_number"],
        )
        return require_row(db, "treatment_sessions", session_id)

    def update(
        self, session_id: str, payload: Union[TreatmentSessionUpdate, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        data = validate(TreatmentSessionUpdate, payload)
        db = self.db
        values = data.model_dump(exclude_unset=True)
        values["updated_at"] = iso_now()
        with write_scope(db):
            if not update_row(db, "treatment_sessions", session_id, values):
                raise NotFound(detail=f"treatment_sessions:{session_id}")
        return require_row(db, "treatment_sessions", session_id)

    def delete(self, session_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM treatment_sessions WHERE id = ?", (session_id,)).rowcount == 0:
                raise NotFound(detail=f"treatment_sessions:{session_id}")


__all__ = ["TreatmentSessionService"]
