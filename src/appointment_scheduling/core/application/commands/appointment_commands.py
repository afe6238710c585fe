from dataclasses import dataclass

from appointment_scheduling.core.application.dtos.appointment_dto import AppointmentPayloadDTO
from appointment_scheduling.core.domain.entities.occurrence_rule import OccurrenceRule
from clinic_core.core.application.cqrs import CommandDTO


@dataclass(frozen=True, slots=True)
class CreateAppointmentCommand(CommandDTO):
    payload: AppointmentPayloadDTO


@dataclass(frozen=True, slots=True)
class CreateRecurringSeriesCommand(CommandDTO):
    payload: AppointmentPayloadDTO
    rule: OccurrenceRule
    duration_minutes: int


@dataclass(frozen=True, slots=True)
class MarkAppointmentStatusCommand(CommandDTO):
    appointment_id: str
    status: str


@dataclass(frozen=True, slots=True)
class RetryCalendarSyncCommand(CommandDTO):
    appointment_id: str
