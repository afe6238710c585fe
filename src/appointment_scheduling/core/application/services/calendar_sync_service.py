from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import (
    APPOINTMENTS_TABLE,
    GcalSyncStatus,
)
from appointment_scheduling.core.domain.events.events import CalendarSyncCompletedEvent
from appointment_scheduling.core.domain.repositories.calendar_notifier import (
    CalendarEntryRequest,
    CalendarEntryResult,
    CalendarEntryUpdate,
    CalendarNotifier,
)
from clinic_core.adapters.observability.metrics import CALENDAR_SYNC_TOTAL
from clinic_core.core.domain.repositories.record_store import RecordStore
from clinic_core.core.domain.services.event_dispatcher import EventDispatcher
from clinic_core.core.utils.date_utils import clinic_now, to_datetime

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class CalendarSyncSummary:
    total: int = 0
    synced: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)
    recurrence_group_id: str | None = None

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def notice(self) -> str | None:
        """Aviso único para o usuário; None quando tudo sincronizou."""
        if not self.failures:
            return None
        return f"{self.failed} de {self.total} falharam ao sincronizar com o Google Calendar"


class CalendarSyncService:
    """
    Sincroniza agendamentos já persistidos com o calendário externo.

    Roda em lotes de `batch_size` chamadas concorrentes; cada resultado é
    gravado na própria linha (`gcal_status`, `gcal_event_id`, ...). Uma
    falha isolada nunca interrompe as demais.
    """

    def __init__(
        self,
        store: RecordStore,
        notifier: CalendarNotifier,
        dispatcher: EventDispatcher,
        batch_size: int = 3,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.batch_size = max(1, batch_size)
        # referência forte às tasks em background até terminarem
        self._tasks: set[asyncio.Task] = set()

    def schedule(
        self,
        rows: Sequence[Mapping[str, Any]],
        *,
        recurrence_group_id: str | None = None,
    ) -> asyncio.Task[CalendarSyncSummary]:
        """Dispara a sincronização em background e devolve a task."""
        task = asyncio.create_task(
            self.sync_rows(rows, recurrence_group_id=recurrence_group_id),
            name=f"gcal-sync-{recurrence_group_id or 'single'}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def sync_rows(
        self,
        rows: Sequence[Mapping[str, Any]],
        *,
        recurrence_group_id: str | None = None,
    ) -> CalendarSyncSummary:
        summary = CalendarSyncSummary(total=len(rows), recurrence_group_id=recurrence_group_id)
        with structlog.contextvars.bound_contextvars(recurrence_group_id=recurrence_group_id):
            log.info("gcal_sync.start", total=len(rows), batch_size=self.batch_size)

            for offset in range(0, len(rows), self.batch_size):
                batch = rows[offset:offset + self.batch_size]
                results = await asyncio.gather(
                    *(self.sync_row(row) for row in batch),
                    return_exceptions=True,
                )
                batch_synced = 0
                for row, result in zip(batch, results, strict=True):
                    row_id = str(row.get("id"))
                    if isinstance(result, BaseException):
                        summary.failures.append((row_id, str(result) or type(result).__name__))
                    elif result.ok:
                        batch_synced += 1
                    else:
                        summary.failures.append((row_id, result.error or "erro desconhecido"))
                summary.synced += batch_synced
                log.info(
                    "gcal_sync.batch_result",
                    synced=batch_synced,
                    failed=len(batch) - batch_synced,
                )

            if summary.failures:
                log.warning(
                    "gcal_sync.summary",
                    notice=summary.notice,
                    failures=summary.failures,
                )
            else:
                log.info("gcal_sync.done", synced=summary.synced)

        self.dispatcher.dispatch(
            CalendarSyncCompletedEvent(
                total=summary.total,
                failed=summary.failed,
                recurrence_group_id=recurrence_group_id,
                failures=tuple(summary.failures),
                notice=summary.notice,
            )
        )
        return summary

    async def sync_row(self, row: Mapping[str, Any]) -> CalendarEntryResult:
        """
        Cria o evento (ou atualiza, se a linha já tem `gcal_event_id`) e
        grava o resultado na linha. Erros do store ao gravar sobem.
        """
        start = to_datetime(row.get("start_time"))
        end = to_datetime(row.get("end_time")) or start
        title = row.get("patient_name") or row.get("title") or ""
        event_id = row.get("gcal_event_id")

        if event_id:
            result = await self.notifier.update_entry(
                CalendarEntryUpdate(
                    external_id=event_id,
                    external_ref_id=str(row["id"]),
                    title=title,
                    start=start,
                    end=end,
                    notes=row.get("title"),
                )
            )
        else:
            result = await self.notifier.create_entry(
                CalendarEntryRequest(
                    title=title,
                    start=start,
                    end=end,
                    external_ref_id=str(row["id"]),
                    notes=row.get("title"),
                )
            )

        await self.store.update_by_id(APPOINTMENTS_TABLE, str(row["id"]), self._status_fields(result))
        CALENDAR_SYNC_TOTAL.labels(GcalSyncStatus.SYNCED.value if result.ok else GcalSyncStatus.ERROR.value).inc()
        return result

    @staticmethod
    def _status_fields(result: CalendarEntryResult) -> dict[str, Any]:
        fields: dict[str, Any] = {"gcal_updated_at": clinic_now()}
        if result.ok:
            fields.update(
                gcal_status=GcalSyncStatus.SYNCED.value,
                gcal_event_id=result.external_id,
                gcal_last_error=None,
            )
            if result.link:
                fields["gcal_event_link"] = result.link
        else:
            fields.update(gcal_status=GcalSyncStatus.ERROR.value, gcal_last_error=result.error or "")
        return fields
