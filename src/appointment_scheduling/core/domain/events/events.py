from dataclasses import dataclass, field

from clinic_core.core.domain.events.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class AppointmentCreatedEvent(DomainEvent):
    appointment_id: str
    patient_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class RecurringSeriesCreatedEvent(DomainEvent):
    recurrence_group_id: str
    created_count: int
    rule: dict = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class CalendarSyncCompletedEvent(DomainEvent):
    """Resumo de uma rodada de sincronização (uma série ou um agendamento)."""
    total: int
    failed: int
    recurrence_group_id: str | None = None
    failures: tuple[tuple[str, str], ...] = ()   # (appointment_id, erro)
    notice: str | None = None


@dataclass(frozen=True, kw_only=True)
class AppointmentStatusChangedEvent(DomainEvent):
    appointment_id: str
    status: str
