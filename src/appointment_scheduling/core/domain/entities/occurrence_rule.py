from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from clinic_core.core.domain.events.exceptions import ValidationError
from config import settings


class RecurrenceKind(str, Enum):
    DAYS = "days"
    MONTHS = "months"
    YEARS = "years"


def clamp_occurrence_count(count: int | None) -> int:
    """Limita a quantidade de ocorrências a [MIN, MAX]; None usa o padrão."""
    if count is None:
        return settings.OCCURRENCE_COUNT_DEFAULT
    return max(settings.OCCURRENCE_COUNT_MIN, min(settings.OCCURRENCE_COUNT_MAX, int(count)))


def _require_positive(name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValidationError(f"{name} deve ser um inteiro >= 1 (recebido {value!r})")


@dataclass(frozen=True, slots=True)
class DaysRule:
    interval_days: int
    occurrence_count: int = settings.OCCURRENCE_COUNT_DEFAULT
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.DAYS

    def validate(self) -> None:
        _require_positive("intervalDays", self.interval_days)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "intervalDays": self.interval_days, "occurrenceCount": self.occurrence_count}


@dataclass(frozen=True, slots=True)
class MonthsRule:
    interval_months: int
    occurrence_count: int = settings.OCCURRENCE_COUNT_DEFAULT
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.MONTHS

    @property
    def step_months(self) -> int:
        return self.interval_months

    def validate(self) -> None:
        _require_positive("intervalMonths", self.interval_months)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "intervalMonths": self.interval_months, "occurrenceCount": self.occurrence_count}


@dataclass(frozen=True, slots=True)
class YearsRule:
    interval_years: int
    occurrence_count: int = settings.OCCURRENCE_COUNT_DEFAULT
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.YEARS

    @property
    def step_months(self) -> int:
        return self.interval_years * 12

    def validate(self) -> None:
        _require_positive("intervalYears", self.interval_years)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "intervalYears": self.interval_years, "occurrenceCount": self.occurrence_count}


OccurrenceRule = DaysRule | MonthsRule | YearsRule


def rule_from_dict(data: dict[str, Any]) -> OccurrenceRule:
    """Reconstrói a regra a partir do JSON gravado em `recurrence_rule`."""
    kind = data.get("kind")
    count = data.get("occurrenceCount", settings.OCCURRENCE_COUNT_DEFAULT)
    if kind == RecurrenceKind.DAYS.value:
        return DaysRule(interval_days=data.get("intervalDays"), occurrence_count=count)
    if kind == RecurrenceKind.MONTHS.value:
        return MonthsRule(interval_months=data.get("intervalMonths"), occurrence_count=count)
    if kind == RecurrenceKind.YEARS.value:
        return YearsRule(interval_years=data.get("intervalYears"), occurrence_count=count)
    raise ValidationError(f"Tipo de recorrência desconhecido: {kind!r}")


# Opções oferecidas na tela de agendamento (valor → regra sem quantidade)
RECURRENCE_PRESETS: dict[str, tuple[str, dict[str, Any]]] = {
    "weekly-1": ("Semanal (1 semana)", {"kind": "days", "intervalDays": 7}),
    "weekly-2": ("A cada 2 semanas", {"kind": "days", "intervalDays": 14}),
    "weekly-3": ("A cada 3 semanas", {"kind": "days", "intervalDays": 21}),
    "weekly-4": ("A cada 4 semanas", {"kind": "days", "intervalDays": 28}),
    "days-15": ("A cada 15 dias", {"kind": "days", "intervalDays": 15}),
    "days-20": ("A cada 20 dias", {"kind": "days", "intervalDays": 20}),
    "days-25": ("A cada 25 dias", {"kind": "days", "intervalDays": 25}),
    "monthly-1": ("Mensal (1 mês)", {"kind": "months", "intervalMonths": 1}),
    "monthly-2": ("A cada 2 meses", {"kind": "months", "intervalMonths": 2}),
    "monthly-3": ("A cada 3 meses", {"kind": "months", "intervalMonths": 3}),
    "monthly-6": ("A cada 6 meses", {"kind": "months", "intervalMonths": 6}),
    "yearly-1": ("Anual (1 ano)", {"kind": "years", "intervalYears": 1}),
}


def rule_from_preset(value: str, occurrence_count: int | None = None) -> OccurrenceRule | None:
    """'' ou valor desconhecido → None (agendamento avulso)."""
    preset = RECURRENCE_PRESETS.get(value or "")
    if preset is None:
        return None
    _, interval = preset
    return rule_from_dict({**interval, "occurrenceCount": clamp_occurrence_count(occurrence_count)})
