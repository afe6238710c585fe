from datetime import datetime
from decimal import Decimal
from typing import Any

from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import AppointmentStatus
from clinic_core.core.application.dtos.base_dto import CamelModel
from clinic_core.core.application.dtos.plan_item_dto import PlanItemDTO
from clinic_core.core.utils.money import ZERO


class AppointmentPayloadDTO(CamelModel):
    patient_id: str | None = None
    patient_name: str
    patient_phone: str = ""
    start_time: datetime
    end_time: datetime | None = None
    title: str
    description: str | None = None
    location: str | None = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    professional_id: str | None = None
    procedures: list[PlanItemDTO] = []

    def budget(self) -> Decimal:
        """Σ max(0, final*qtd - desconto) dos procedimentos."""
        return sum(
            (max(ZERO, p.final_price * p.quantity - p.discount) for p in self.procedures),
            ZERO,
        )

    def to_row(self, start_time: datetime, end_time: datetime | None) -> dict[str, Any]:
        row: dict[str, Any] = {
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "patient_phone": self.patient_phone,
            "start_time": start_time,
            "end_time": end_time,
            "title": self.title,
            "description": self.description or None,
            "location": self.location or None,
            "status": self.status.value,
        }
        if self.professional_id:
            row["professional_id"] = self.professional_id
        budget = self.budget()
        if self.procedures and budget > ZERO:
            row["budget"] = budget
        return row


class AppointmentProcedureDTO(CamelModel):
    id: str | None = None
    procedure_catalog_id: str | None = None
    procedure_name_snapshot: str
    final_price: Decimal = ZERO
    quantity: int = 1
    discount: Decimal = ZERO

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AppointmentProcedureDTO":
        return cls(
            id=row.get("id"),
            procedure_catalog_id=row.get("procedure_catalog_id") or row.get("procedure_id"),
            procedure_name_snapshot=row.get("procedure_name_snapshot") or "",
            final_price=row.get("final_price") or ZERO,
            quantity=row.get("quantity") or 1,
            discount=row.get("discount") or ZERO,
        )

    @property
    def line_total(self) -> Decimal:
        return self.final_price * self.quantity - self.discount


class AppointmentWithProceduresDTO(CamelModel):
    id: str
    patient_id: str | None = None
    patient_name: str | None = None
    professional_id: str | None = None
    title: str | None = None
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    status: str
    gcal_status: str | None = None
    gcal_event_link: str | None = None
    recurrence_group_id: str | None = None
    procedures: list[AppointmentProcedureDTO] = []
    total_potential: Decimal = ZERO
