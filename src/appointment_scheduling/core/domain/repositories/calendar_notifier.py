from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class CalendarEntryRequest:
    title: str
    start: datetime
    end: datetime
    external_ref_id: str          # id do agendamento no store
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class CalendarEntryUpdate:
    external_id: str
    external_ref_id: str
    title: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class CalendarEntryResult:
    ok: bool
    external_id: str | None = None
    link: str | None = None
    error: str | None = None
    details: Any = None

    @classmethod
    def success(cls, external_id: str | None, link: str | None = None) -> "CalendarEntryResult":
        return cls(ok=True, external_id=external_id, link=link)

    @classmethod
    def failure(cls, error: str, details: Any = None) -> "CalendarEntryResult":
        return cls(ok=False, error=error, details=details)


class CalendarNotifier(ABC):
    """
    Porta para o calendário externo.
    Falhas comuns voltam como `CalendarEntryResult(ok=False)`, sem exceção.
    """

    @abstractmethod
    async def create_entry(self, request: CalendarEntryRequest) -> CalendarEntryResult:
        ...

    @abstractmethod
    async def update_entry(self, update: CalendarEntryUpdate) -> CalendarEntryResult:
        ...

    @abstractmethod
    async def delete_entry(self, external_id: str) -> CalendarEntryResult:
        ...
