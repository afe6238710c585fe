from __future__ import annotations

import structlog

from appointment_scheduling.core.application.commands.appointment_commands import (
    CreateAppointmentCommand,
    CreateRecurringSeriesCommand,
    MarkAppointmentStatusCommand,
    RetryCalendarSyncCommand,
)
from appointment_scheduling.core.application.services.appointment_service import (
    AppointmentCreatedResult,
    AppointmentService,
    RecurringSeriesResult,
)
from appointment_scheduling.core.application.services.calendar_sync_service import CalendarSyncService
from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import (
    APPOINTMENTS_TABLE,
    AppointmentStatus,
)
from appointment_scheduling.core.domain.events.events import AppointmentStatusChangedEvent
from appointment_scheduling.core.domain.repositories.calendar_notifier import CalendarEntryResult
from clinic_core.core.application.cqrs import CommandHandler
from clinic_core.core.domain.events.exceptions import NotFoundError, ValidationError
from clinic_core.core.domain.repositories.record_store import RecordStore
from clinic_core.core.domain.services.event_dispatcher import EventDispatcher

log = structlog.get_logger(__name__)


class CreateAppointmentHandler(CommandHandler[CreateAppointmentCommand]):
    def __init__(self, service: AppointmentService):
        self.service = service

    async def handle(self, cmd: CreateAppointmentCommand) -> AppointmentCreatedResult:
        return await self.service.create_appointment(cmd.payload)


class CreateRecurringSeriesHandler(CommandHandler[CreateRecurringSeriesCommand]):
    """
    Cria N ocorrências num único insert em lote e devolve imediatamente;
    a sincronização com o calendário segue em `result.sync_task`.
    """
    def __init__(self, service: AppointmentService):
        self.service = service

    async def handle(self, cmd: CreateRecurringSeriesCommand) -> RecurringSeriesResult:
        return await self.service.create_recurring_series(cmd.payload, cmd.rule, cmd.duration_minutes)


class MarkAppointmentStatusHandler(CommandHandler[MarkAppointmentStatusCommand]):
    def __init__(self, store: RecordStore, dispatcher: EventDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def handle(self, cmd: MarkAppointmentStatusCommand) -> None:
        try:
            status = AppointmentStatus(cmd.status)
        except ValueError as exc:
            raise ValidationError(f"Status de agendamento inválido: {cmd.status!r}") from exc

        await self.store.update_by_id(APPOINTMENTS_TABLE, cmd.appointment_id, {"status": status.value})
        log.info("appointment.status_updated", appointment_id=cmd.appointment_id, status=status.value)
        self.dispatcher.dispatch(AppointmentStatusChangedEvent(appointment_id=cmd.appointment_id, status=status.value))


class RetryCalendarSyncHandler(CommandHandler[RetryCalendarSyncCommand]):
    """Reexecuta a sincronização de uma ocorrência (normalmente em `error`)."""
    def __init__(self, store: RecordStore, sync_service: CalendarSyncService):
        self.store = store
        self.sync_service = sync_service

    async def handle(self, cmd: RetryCalendarSyncCommand) -> CalendarEntryResult:
        rows = await self.store.select(APPOINTMENTS_TABLE, filters={"id": cmd.appointment_id})
        if not rows:
            raise NotFoundError(f"Agendamento {cmd.appointment_id} não encontrado")
        result = await self.sync_service.sync_row(rows[0])
        log.info("gcal_sync.retry", appointment_id=cmd.appointment_id, ok=result.ok, error=result.error)
        return result
