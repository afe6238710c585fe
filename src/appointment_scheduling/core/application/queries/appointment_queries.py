from dataclasses import dataclass

from clinic_core.core.application.cqrs import QueryDTO


@dataclass(frozen=True, slots=True)
class ListAppointmentsWithProceduresQuery(QueryDTO):
    """Agendamentos entre hoje - days_before e hoje + days_after, com procedimentos."""
    days_before: int = 30
    days_after: int = 30
