"""
Utilitários de data/hora no fuso da clínica.

Datas de vencimento e pagamento são `date` (sem hora); horários de
agendamento são `datetime` com fuso. Aritmética de dias e meses opera
sobre o relógio local para não sofrer com mudança de horário.
"""
import calendar
import re
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from clinic_core.core.domain.events.exceptions import ValidationError
from config import settings

D = TypeVar("D", date, datetime)

_MONTH_YEAR_RE = re.compile(r"^(\d{4})-(\d{2})$")


@lru_cache
def get_zone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or settings.CLINIC_TIMEZONE)


def clinic_now() -> datetime:
    return datetime.now(get_zone())


def today_in_clinic() -> date:
    return clinic_now().date()


def localize(value: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Datetime ingênuo é hora local da clínica; com fuso é convertido."""
    tz = tz or get_zone()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: D, months: int) -> D:
    """
    Soma meses preservando hora/minuto/segundo; o dia é limitado ao
    último dia válido do mês de destino (31/jan + 1 → 28/fev).
    """
    total = value.month - 1 + months
    year = value.year + total // 12
    month = total % 12 + 1
    day = min(value.day, last_day_of_month(year, month))
    return value.replace(year=year, month=month, day=day)


def add_days(value: D, days: int) -> D:
    # Em datetime com ZoneInfo a soma atua nos campos locais (wall clock)
    return value + timedelta(days=days)


def add_minutes(value: datetime, minutes: int) -> datetime:
    """Soma tempo decorrido real (via UTC) e devolve no fuso original."""
    if value.tzinfo is None:
        return value + timedelta(minutes=minutes)
    shifted = value.astimezone(timezone.utc) + timedelta(minutes=minutes)
    return shifted.astimezone(value.tzinfo)


def parse_month_year(month_year: str) -> tuple[int, int]:
    match = _MONTH_YEAR_RE.match(month_year or "")
    if not match:
        raise ValidationError(f"Mês inválido (esperado YYYY-MM): {month_year!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Mês inválido (esperado YYYY-MM): {month_year!r}")
    return year, month


def month_bounds(month_year: str) -> tuple[date, date]:
    year, month = parse_month_year(month_year)
    return date(year, month, 1), date(year, month, last_day_of_month(year, month))


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def to_date(value: Any) -> date | None:
    """Aceita `date`, `datetime` ou string ISO (`YYYY-MM-DD[...]`)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"Data inválida: {value!r}") from exc


def to_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f"Data/hora inválida: {value!r}") from exc


def is_overdue(due_date: date | None, today: date | None = None) -> bool:
    """Vencida = vencimento estritamente antes de hoje."""
    if due_date is None:
        return False
    return due_date < (today or today_in_clinic())
