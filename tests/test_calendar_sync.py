"""
Fan-out de sincronização com o calendário: lotes de 3, falhas isoladas
viram status por linha e um único resumo.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from unittest import IsolatedAsyncioTestCase
from zoneinfo import ZoneInfo

from appointment_scheduling.core.application.commands.appointment_commands import RetryCalendarSyncCommand
from appointment_scheduling.core.application.handlers.appointment_handlers import RetryCalendarSyncHandler
from appointment_scheduling.core.application.services.calendar_sync_service import CalendarSyncService
from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import APPOINTMENTS_TABLE
from appointment_scheduling.core.domain.events.events import CalendarSyncCompletedEvent
from clinic_core.core.domain.events.exceptions import NotFoundError
from clinic_core.core.domain.services.event_dispatcher import EventDispatcher
from tests.helpers.memory_store import InMemoryRecordStore
from tests.helpers.scripted_notifier import ScriptedCalendarNotifier

SP = ZoneInfo("America/Sao_Paulo")


def _rows(count: int) -> list[dict]:
    first = datetime(2025, 3, 1, 9, 0, tzinfo=SP)
    return [
        {
            "id": f"apt-{i}",
            "patient_name": "João Lima",
            "title": "Avaliação",
            "start_time": (first + timedelta(days=7 * i)).isoformat(),
            "end_time": (first + timedelta(days=7 * i, minutes=30)).isoformat(),
            "gcal_status": "unsynced",
        }
        for i in range(1, count + 1)
    ]


class CalendarSyncServiceTests(IsolatedAsyncioTestCase):
    def setUp(self):
        self.dispatcher = EventDispatcher()
        self.completed: list[CalendarSyncCompletedEvent] = []
        self.dispatcher.subscribe(CalendarSyncCompletedEvent, self.completed.append)

    def _service(self, rows, notifier) -> tuple[CalendarSyncService, InMemoryRecordStore]:
        store = InMemoryRecordStore({APPOINTMENTS_TABLE: rows})
        return CalendarSyncService(store, notifier, self.dispatcher, batch_size=3), store

    async def test_runs_in_batches_of_three(self):
        notifier = ScriptedCalendarNotifier(delay=0.02)
        service, store = self._service(_rows(7), notifier)

        summary = await service.sync_rows(store.tables[APPOINTMENTS_TABLE], recurrence_group_id="grp-1")

        self.assertEqual(notifier.max_in_flight, 3)
        self.assertEqual(len(notifier.created), 7)
        self.assertEqual((summary.total, summary.synced, summary.failed), (7, 7, 0))
        self.assertIsNone(summary.notice)
        row = store.tables[APPOINTMENTS_TABLE][0]
        self.assertEqual(row["gcal_status"], "synced")
        self.assertEqual(row["gcal_event_id"], "evt-apt-1")
        self.assertIn("evt-apt-1", row["gcal_event_link"])

    async def test_failures_are_isolated_and_summarised_once(self):
        notifier = ScriptedCalendarNotifier(fail_ids={"apt-2"}, raise_ids={"apt-4"})
        service, store = self._service(_rows(5), notifier)

        summary = await service.sync_rows(list(store.tables[APPOINTMENTS_TABLE]), recurrence_group_id="grp-2")

        self.assertEqual(summary.synced, 3)
        self.assertEqual(summary.failed, 2)
        self.assertEqual(summary.notice, "2 de 5 falharam ao sincronizar com o Google Calendar")
        by_id = {r["id"]: r for r in store.tables[APPOINTMENTS_TABLE]}
        self.assertEqual(by_id["apt-2"]["gcal_status"], "error")
        self.assertEqual(by_id["apt-2"]["gcal_last_error"], "quota excedida")
        self.assertEqual(by_id["apt-5"]["gcal_status"], "synced")
        self.assertEqual(len(self.completed), 1)
        self.assertEqual(self.completed[0].failed, 2)
        self.assertEqual(self.completed[0].recurrence_group_id, "grp-2")
        self.assertEqual({f[0] for f in self.completed[0].failures}, {"apt-2", "apt-4"})

    async def test_schedule_runs_in_background(self):
        notifier = ScriptedCalendarNotifier()
        service, store = self._service(_rows(2), notifier)

        task = service.schedule(store.tables[APPOINTMENTS_TABLE])
        self.assertIn(task, service._tasks)
        summary = await task

        self.assertEqual(summary.synced, 2)
        self.assertNotIn(task, service._tasks)

    async def test_row_with_event_id_is_updated(self):
        rows = _rows(1)
        rows[0]["gcal_event_id"] = "evt-old"
        notifier = ScriptedCalendarNotifier(delay=0)
        service, store = self._service(rows, notifier)

        result = await service.sync_row(store.tables[APPOINTMENTS_TABLE][0])

        self.assertTrue(result.ok)
        self.assertEqual(notifier.created, [])
        self.assertEqual(notifier.updated[0].external_id, "evt-old")
        self.assertEqual(notifier.updated[0].title, "João Lima")
        self.assertEqual(notifier.updated[0].notes, "Avaliação")


class RetryCalendarSyncTests(IsolatedAsyncioTestCase):
    async def test_retry_resyncs_one_row(self):
        rows = _rows(2)
        rows[0]["gcal_status"] = "error"
        store = InMemoryRecordStore({APPOINTMENTS_TABLE: rows})
        notifier = ScriptedCalendarNotifier(delay=0)
        handler = RetryCalendarSyncHandler(store, CalendarSyncService(store, notifier, EventDispatcher()))

        result = await handler.handle(RetryCalendarSyncCommand(appointment_id="apt-1"))

        self.assertTrue(result.ok)
        self.assertEqual(store.tables[APPOINTMENTS_TABLE][0]["gcal_status"], "synced")
        self.assertEqual(store.tables[APPOINTMENTS_TABLE][1]["gcal_status"], "unsynced")

    async def test_retry_unknown_row(self):
        store = InMemoryRecordStore()
        handler = RetryCalendarSyncHandler(store, CalendarSyncService(store, ScriptedCalendarNotifier(), EventDispatcher()))
        with self.assertRaises(NotFoundError):
            await handler.handle(RetryCalendarSyncCommand(appointment_id="nope"))
