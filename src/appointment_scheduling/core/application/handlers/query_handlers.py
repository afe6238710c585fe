import asyncio
from datetime import timedelta

import structlog

from appointment_scheduling.core.application.dtos.appointment_dto import (
    AppointmentProcedureDTO,
    AppointmentWithProceduresDTO,
)
from appointment_scheduling.core.application.queries.appointment_queries import (
    ListAppointmentsWithProceduresQuery,
)
from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import APPOINTMENTS_TABLE
from clinic_core.adapters.context.capabilities import APPOINTMENT_PROCEDURES_TABLE, Capabilities
from clinic_core.core.application.cqrs import QueryHandler
from clinic_core.core.domain.repositories.record_store import RecordStore, Row
from clinic_core.core.utils.date_utils import clinic_now
from clinic_core.core.utils.money import ZERO

log = structlog.get_logger(__name__)


class ListAppointmentsWithProceduresHandler(
    QueryHandler[ListAppointmentsWithProceduresQuery, list[AppointmentWithProceduresDTO]]
):
    def __init__(self, store: RecordStore, capabilities: Capabilities):
        self.store = store
        self.capabilities = capabilities

    async def handle(self, query: ListAppointmentsWithProceduresQuery) -> list[AppointmentWithProceduresDTO]:
        now = clinic_now()
        rows = await self.store.query_by_time_range(
            APPOINTMENTS_TABLE,
            "start_time",
            now - timedelta(days=query.days_before),
            now + timedelta(days=query.days_after),
            order_by="start_time",
        )
        if not rows:
            return []
        items = await asyncio.gather(*(self._load_procedures(str(r["id"])) for r in rows))
        return [self._to_dto(row, procedures) for row, procedures in zip(rows, items, strict=True)]

    async def _load_procedures(self, appointment_id: str) -> list[AppointmentProcedureDTO]:
        if not self.capabilities.has_table(APPOINTMENT_PROCEDURES_TABLE):
            return []
        rows = await self.store.select(
            APPOINTMENT_PROCEDURES_TABLE,
            filters={"appointment_id": appointment_id},
            order_by="created_at",
        )
        return [AppointmentProcedureDTO.from_row(r) for r in rows]

    @staticmethod
    def _to_dto(row: Row, procedures: list[AppointmentProcedureDTO]) -> AppointmentWithProceduresDTO:
        data = {k: v for k, v in row.items() if k in AppointmentWithProceduresDTO.model_fields}
        data["id"] = str(row["id"])
        return AppointmentWithProceduresDTO(
            **data,
            procedures=procedures,
            total_potential=sum((p.line_total for p in procedures), ZERO),
        )
