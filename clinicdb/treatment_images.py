"""Images attached to a tooth, optionally tied to one of its treatments."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Union

import structlog

from clinicdb.errors import NotFound
from clinicdb.records import Service, fetch_all, insert_row, new_id, write_scope
from clinicdb.schemas import ToothTreatmentImageCreate, validate
from clinicdb.time_utils import iso_now

logger = structlog.get_logger(__name__)

_SELECT = """
    SELECT tti.*, tt.tooth_name, tt.treatment_type, p.full_name AS patient_name
      FROM tooth_treatment_images tti
      LEFT JOIN tooth_treatments tt ON tt.id = tti.tooth_treatment_id
      LEFT JOIN patients p ON p.id = tti.patient_id
"""


class ToothTreatmentImageService(Service):
    groups = ("patients", "tooth_treatments")

    def list(self) -> List[Dict[str, Any]]:
        return fetch_all(self.db, _SELECT + " ORDER BY tti.created_at DESC")

    def list_by_treatment(self, treatment_id: str) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            _SELECT + " WHERE tti.tooth_treatment_id = ? ORDER BY tti.image_type, tti.taken_date DESC",
            (treatment_id,),
        )

    def list_by_tooth(self, patient_id: str, tooth_number: int) -> List[Dict[str, Any]]:
        return fetch_all(
            self.db,
            _SELECT
            + " WHERE tti.patient_id = ? AND tti.tooth_number = ? ORDER BY tti.image_type, tti.taken_date DESC",
            (patient_id, tooth_number),
        )

    def create(self, payload: Union[ToothTreatmentImageCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        data = validate(ToothTreatmentImageCreate, payload)
        db = self.db
        now = iso_now()
        image_id = data.id or new_id()
        values = data.model_dump(exclude={"id"})
        values.update(id=image_id, taken_date=data.taken_date or now, created_at=now, updated_at=now)
        with write_scope(db):
            insert_row(db, "tooth_treatment_images", values)
        logger.info(
            "tooth_treatment_image_created",
            image_id=image_id,
            tooth_treatment_id=data.tooth_treatment_id,
            tooth_number=data.tooth_number,
        )
        return fetch_all(db, _SELECT + " WHERE tti.id = ?", (image_id,))[0]

    def delete(self, image_id: str) -> None:
        db = self.db
        with write_scope(db):
            if db.execute("DELETE FROM tooth_treatment_images WHERE id = ?", (image_id,)).rowcount == 0:
                raise NotFound(detail=f"tooth_treatment_images:{image_id}")
        logger.info("tooth_treatment_image_deleted", image_id=image_id)


__all__ = ["ToothTreatmentImageService"]
