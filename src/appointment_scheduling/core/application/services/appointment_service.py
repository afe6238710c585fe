from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from appointment_scheduling.core.application.dtos.appointment_dto import AppointmentPayloadDTO
from appointment_scheduling.core.application.services.calendar_sync_service import (
    CalendarSyncService,
    CalendarSyncSummary,
)
from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import (
    APPOINTMENTS_TABLE,
    GcalSyncStatus,
)
from appointment_scheduling.core.domain.entities.occurrence_rule import OccurrenceRule
from appointment_scheduling.core.domain.events.events import (
    AppointmentCreatedEvent,
    RecurringSeriesCreatedEvent,
)
from appointment_scheduling.core.domain.services.recurrence_engine import generate_occurrences
from clinic_core.adapters.context.capabilities import APPOINTMENT_PROCEDURES_TABLE, Capabilities
from clinic_core.adapters.observability.metrics import OCCURRENCES_CREATED, SERIES_CREATED
from clinic_core.core.domain.events.exceptions import (
    IntegrityError,
    RecordStoreError,
    SecondaryWriteError,
)
from clinic_core.core.domain.repositories.record_store import RecordStore, Row
from clinic_core.core.domain.services.event_dispatcher import EventDispatcher
from clinic_core.core.utils.date_utils import add_minutes, localize
from config import settings

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class AppointmentCreatedResult:
    appointment_id: str
    sync_task: asyncio.Task[CalendarSyncSummary] | None = field(default=None, repr=False)


@dataclass(slots=True)
class RecurringSeriesResult:
    created_count: int
    recurrence_group_id: str
    sync_task: asyncio.Task[CalendarSyncSummary] | None = field(default=None, repr=False)

    def as_dict(self) -> dict[str, Any]:
        return {"created_count": self.created_count, "recurrence_group_id": self.recurrence_group_id}


class AppointmentService:
    """
    Criação de agendamentos em duas fases: grava no store (autoritativo)
    e só então agenda a sincronização com o calendário em background.
    """

    def __init__(
        self,
        store: RecordStore,
        sync_service: CalendarSyncService,
        dispatcher: EventDispatcher,
        capabilities: Capabilities,
    ) -> None:
        self.store = store
        self.sync_service = sync_service
        self.dispatcher = dispatcher
        self.capabilities = capabilities

    # ───────────────────────── série recorrente ─────────────────────────
    async def create_recurring_series(
        self,
        payload: AppointmentPayloadDTO,
        rule: OccurrenceRule,
        duration_minutes: int,
    ) -> RecurringSeriesResult:
        # valida tudo antes de qualquer escrita
        occurrences = generate_occurrences(payload.start_time, rule, duration_minutes)
        items = [p.to_plan_item() for p in payload.procedures]
        expected = len(occurrences)
        group_id = str(uuid.uuid4())
        rule_json = rule.to_dict()

        rows = [
            {
                **payload.to_row(occ.start_time, occ.end_time),
                "recurrence_group_id": group_id,
                "recurrence_index": occ.index,
                "recurrence_total": occ.total_count,
                "recurrence_rule": rule_json,
                "gcal_status": GcalSyncStatus.UNSYNCED.value,
            }
            for occ in occurrences
        ]

        log.info("series.create", recurrence_group_id=group_id, expected=expected, rule=rule_json)
        try:
            inserted = await self.store.insert_batch(APPOINTMENTS_TABLE, rows)
        except RecordStoreError as exc:
            log.error("series.insert_failed", recurrence_group_id=group_id, error=str(exc), exc_info=True)
            raise IntegrityError(f"Erro ao criar agendamentos recorrentes: {exc}") from exc

        if not inserted:
            log.error("series.insert_empty", recurrence_group_id=group_id, expected=expected)
            raise IntegrityError("Nenhum agendamento foi criado")
        if len(inserted) != expected:
            log.error("series.count_mismatch", recurrence_group_id=group_id, expected=expected, created=len(inserted))
            raise IntegrityError(f"Criados {len(inserted)} de {expected} agendamentos")

        inserted = sorted(inserted, key=lambda r: r.get("recurrence_index") or 0)
        SERIES_CREATED.labels(rule.kind.value).inc()
        OCCURRENCES_CREATED.inc(expected)

        if items:
            # Sem rollback: as ocorrências ficam, então seguem para o calendário
            try:
                await self._insert_procedures([r["id"] for r in inserted], payload)
            except RecordStoreError as exc:
                log.error(
                    "series.items_failed",
                    recurrence_group_id=group_id,
                    created_count=expected,
                    error=str(exc),
                    exc_info=True,
                )
                task = self.sync_service.schedule(inserted, recurrence_group_id=group_id)
                raise SecondaryWriteError(
                    f"Agendamentos criados, mas falhou ao salvar procedimentos: {exc}",
                    created_count=expected,
                    recurrence_group_id=group_id,
                    sync_task=task,
                ) from exc

        self.dispatcher.dispatch(
            RecurringSeriesCreatedEvent(recurrence_group_id=group_id, created_count=expected, rule=rule_json)
        )
        task = self.sync_service.schedule(inserted, recurrence_group_id=group_id)
        log.info("series.created", recurrence_group_id=group_id, created_count=expected)
        return RecurringSeriesResult(created_count=expected, recurrence_group_id=group_id, sync_task=task)

    # ───────────────────────── agendamento avulso ─────────────────────────
    async def create_appointment(self, payload: AppointmentPayloadDTO) -> AppointmentCreatedResult:
        start = localize(payload.start_time)
        end = localize(payload.end_time) if payload.end_time else add_minutes(start, settings.DEFAULT_DURATION_MINUTES)
        row = {**payload.to_row(start, end), "gcal_status": GcalSyncStatus.UNSYNCED.value}

        log.info(
            "appointment.create",
            patient_id=payload.patient_id,
            has_procedures=bool(payload.procedures),
            budget=str(payload.budget()),
        )
        try:
            inserted = await self.store.insert_batch(APPOINTMENTS_TABLE, [row])
        except RecordStoreError as exc:
            log.error("appointment.insert_failed", error=str(exc), exc_info=True)
            raise IntegrityError(f"Erro ao criar agendamento: {exc}") from exc
        if len(inserted) != 1:
            raise IntegrityError(f"Esperado 1 agendamento criado, obtido {len(inserted)}")

        appointment = inserted[0]
        appointment_id = str(appointment["id"])

        if payload.procedures:
            try:
                await self._insert_procedures([appointment_id], payload)
            except RecordStoreError as exc:
                log.error("appointment.items_failed", appointment_id=appointment_id, error=str(exc))
                await self._rollback_appointment(appointment_id)
                raise SecondaryWriteError(
                    f"Erro ao salvar procedimentos do agendamento: {exc}",
                    created_count=0,
                ) from exc

        OCCURRENCES_CREATED.inc()
        self.dispatcher.dispatch(AppointmentCreatedEvent(appointment_id=appointment_id, patient_id=payload.patient_id))
        task = self.sync_service.schedule([appointment])
        log.info("appointment.created", appointment_id=appointment_id, items=len(payload.procedures))
        return AppointmentCreatedResult(appointment_id=appointment_id, sync_task=task)

    # ───────────────────────── helpers ─────────────────────────
    async def _insert_procedures(self, appointment_ids: list[str], payload: AppointmentPayloadDTO) -> list[Row]:
        if not self.capabilities.has_table(APPOINTMENT_PROCEDURES_TABLE):
            log.warning("appointment.procedures_table_missing", appointments=len(appointment_ids))
            return []
        item_rows = [
            {
                "appointment_id": appointment_id,
                "procedure_catalog_id": item.procedure_id,
                "procedure_name_snapshot": item.name,
                "final_price": item.final_price,
                "quantity": item.quantity,
                "discount": item.discount,
            }
            for appointment_id in appointment_ids
            for item in payload.procedures
        ]
        return await self.store.insert_batch(APPOINTMENT_PROCEDURES_TABLE, item_rows)

    async def _rollback_appointment(self, appointment_id: str) -> None:
        try:
            await self.store.delete_by_id(APPOINTMENTS_TABLE, appointment_id)
            log.warning("appointment.rolled_back", appointment_id=appointment_id)
        except RecordStoreError as exc:
            log.error("appointment.rollback_failed", appointment_id=appointment_id, error=str(exc))
