"""
Geração das ocorrências de uma série recorrente.

Cada ocorrência é calculada a partir do primeiro horário (nunca encadeada),
então uma série mensal que começa em 31/jan fica 31/jan, 28/fev, 31/mar.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import AppointmentOccurrence
from appointment_scheduling.core.domain.entities.occurrence_rule import (
    DaysRule,
    OccurrenceRule,
    clamp_occurrence_count,
)
from clinic_core.core.domain.events.exceptions import ValidationError
from clinic_core.core.utils.date_utils import add_days, add_minutes, add_months, localize


def occurrence_start(first_start: datetime, rule: OccurrenceRule, offset: int) -> datetime:
    """Início da ocorrência de posição `offset` (0 = a primeira)."""
    if isinstance(rule, DaysRule):
        return add_days(first_start, offset * rule.interval_days)
    return add_months(first_start, offset * rule.step_months)


def generate_occurrences(
    first_start: datetime,
    rule: OccurrenceRule,
    duration_minutes: int,
    *,
    tz: ZoneInfo | None = None,
) -> list[AppointmentOccurrence]:
    if not isinstance(first_start, datetime):
        raise ValidationError(f"Início inválido: {first_start!r}")
    if not isinstance(rule, OccurrenceRule):
        raise ValidationError(f"Regra de recorrência inválida: {rule!r}")
    rule.validate()
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool) or duration_minutes < 1:
        raise ValidationError(f"Duração deve ser um inteiro >= 1 (recebido {duration_minutes!r})")

    count = clamp_occurrence_count(rule.occurrence_count)
    local_start = localize(first_start, tz)

    occurrences: list[AppointmentOccurrence] = []
    for k in range(count):
        start = occurrence_start(local_start, rule, k)
        occurrences.append(
            AppointmentOccurrence(
                start_time=start,
                end_time=add_minutes(start, duration_minutes),
                index=k + 1,
                total_count=count,
            )
        )
    return occurrences
