"""
Handlers de agenda via buses e o container de DI montado com fakes.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from unittest import IsolatedAsyncioTestCase, TestCase
from unittest.mock import patch
from zoneinfo import ZoneInfo

from appointment_scheduling.adapters.notifiers.registry import get_calendar_notifier
from appointment_scheduling.core.application.commands.appointment_commands import (
    CreateRecurringSeriesCommand,
    MarkAppointmentStatusCommand,
)
from appointment_scheduling.core.application.dtos.appointment_dto import AppointmentPayloadDTO
from appointment_scheduling.core.application.handlers import (
    ListAppointmentsWithProceduresHandler,
    MarkAppointmentStatusHandler,
)
from appointment_scheduling.core.application.queries.appointment_queries import (
    ListAppointmentsWithProceduresQuery,
)
from appointment_scheduling.core.domain.entities.appointment_occurrence_entity import APPOINTMENTS_TABLE
from appointment_scheduling.core.domain.entities.occurrence_rule import DaysRule
from appointment_scheduling.core.domain.events.events import AppointmentStatusChangedEvent
from clinic_core.adapters.config import composition_root
from clinic_core.adapters.context.capabilities import APPOINTMENT_PROCEDURES_TABLE, Capabilities
from clinic_core.adapters.observability.metrics import metrics_payload
from clinic_core.core.application.cqrs import CommandBus
from clinic_core.core.domain.events.exceptions import ValidationError
from clinic_core.core.domain.services.event_dispatcher import EventDispatcher
from config import settings
from financial_billing.core.application.queries.financial_queries import (
    GetMonthlyGoalQuery,
    ListInstallmentsByStatusQuery,
    PatientFinancialTimelineQuery,
)
from tests.helpers.memory_store import InMemoryRecordStore
from tests.helpers.scripted_notifier import ScriptedCalendarNotifier

SP = ZoneInfo("America/Sao_Paulo")
NOW = datetime(2025, 3, 15, 10, 0, tzinfo=SP)


def _appointment(idx: int, start: datetime, **extra) -> dict:
    return {
        "id": f"apt-{idx}",
        "patient_id": "pat-1",
        "patient_name": "Maria Souza",
        "title": "Retorno",
        "start_time": start,
        "end_time": start + timedelta(minutes=30),
        "status": "scheduled",
        "gcal_status": "unsynced",
        **extra,
    }


class MarkAppointmentStatusTests(IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = InMemoryRecordStore({APPOINTMENTS_TABLE: [_appointment(1, NOW)]})
        self.dispatcher = EventDispatcher()
        self.events = []
        self.dispatcher.subscribe(AppointmentStatusChangedEvent, self.events.append)
        self.bus = CommandBus()
        self.bus.register(MarkAppointmentStatusCommand, MarkAppointmentStatusHandler(self.store, self.dispatcher))

    async def test_status_is_updated_and_event_dispatched(self):
        await self.bus.dispatch(MarkAppointmentStatusCommand("apt-1", "completed_with_sale"))

        self.assertEqual(self.store.tables[APPOINTMENTS_TABLE][0]["status"], "completed_with_sale")
        self.assertEqual(len(self.events), 1)
        self.assertEqual(self.events[0].status, "completed_with_sale")

    async def test_unknown_status_is_rejected_before_writing(self):
        with self.assertRaises(ValidationError):
            await self.bus.dispatch(MarkAppointmentStatusCommand("apt-1", "faltou"))
        self.assertEqual(self.store.calls_to("update", APPOINTMENTS_TABLE), 0)
        self.assertEqual(self.events, [])

    def test_unregistered_command(self):
        with self.assertRaises(ValueError):
            self.bus.dispatch(object())


@patch("appointment_scheduling.core.application.handlers.query_handlers.clinic_now", return_value=NOW)
class ListAppointmentsWithProceduresTests(IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = InMemoryRecordStore({
            APPOINTMENTS_TABLE: [
                _appointment(2, NOW + timedelta(days=3)),
                _appointment(1, NOW - timedelta(days=2), gcal_status="synced"),
                _appointment(3, NOW + timedelta(days=45)),
            ],
            APPOINTMENT_PROCEDURES_TABLE: [
                {"appointment_id": "apt-1", "procedure_catalog_id": "cat-1", "procedure_name_snapshot": "Limpeza",
                 "final_price": Decimal("150.00"), "quantity": 1, "discount": Decimal("0")},
                {"appointment_id": "apt-1", "procedure_catalog_id": "cat-2", "procedure_name_snapshot": "Flúor",
                 "final_price": Decimal("25.00"), "quantity": 2, "discount": Decimal("10")},
            ],
        })

    async def test_window_order_and_potential(self, _now):
        handler = ListAppointmentsWithProceduresHandler(self.store, Capabilities())

        result = await handler.handle(ListAppointmentsWithProceduresQuery(days_before=7, days_after=30))

        self.assertEqual([a.id for a in result], ["apt-1", "apt-2"])
        self.assertEqual(len(result[0].procedures), 2)
        self.assertEqual(result[0].total_potential, Decimal("190.00"))
        self.assertEqual(result[0].gcal_status, "synced")
        self.assertEqual(result[1].procedures, [])
        self.assertEqual(result[1].total_potential, Decimal("0"))

    async def test_missing_procedures_table_returns_bare_appointments(self, _now):
        caps = Capabilities(missing_tables=frozenset({APPOINTMENT_PROCEDURES_TABLE}))
        handler = ListAppointmentsWithProceduresHandler(self.store, caps)

        result = await handler.handle(ListAppointmentsWithProceduresQuery())

        self.assertTrue(all(a.procedures == [] for a in result))
        self.assertEqual(self.store.calls_to("select", APPOINTMENT_PROCEDURES_TABLE), 0)

    async def test_empty_window(self, _now):
        handler = ListAppointmentsWithProceduresHandler(InMemoryRecordStore(), Capabilities())
        self.assertEqual(await handler.handle(ListAppointmentsWithProceduresQuery()), [])


class CompositionRootTests(IsolatedAsyncioTestCase):
    def setUp(self):
        composition_root.container = None
        self.store = InMemoryRecordStore()
        self.notifier = ScriptedCalendarNotifier(fail_ids={"appointments-2"}, delay=0)
        self.container = composition_root.setup_di_container_from_settings(
            settings,
            record_store=self.store,
            capabilities=Capabilities(),
            calendar_notifier=self.notifier,
        )

    def tearDown(self):
        composition_root.container = None

    def test_container_is_initialised_once(self):
        again = composition_root.setup_di_container_from_settings(settings)
        self.assertIs(again, self.container)

    async def test_series_through_the_service_facade(self):
        service = self.container.clinic_service()
        payload = AppointmentPayloadDTO.model_validate({
            "patientName": "Maria Souza",
            "startTime": datetime(2025, 3, 1, 9, 0, tzinfo=SP),
            "title": "Manutenção",
        })

        result = await service.execute(CreateRecurringSeriesCommand(payload, DaysRule(7, 3), 30))
        summary = await result.sync_task

        self.assertEqual(result.created_count, 3)
        self.assertEqual((summary.synced, summary.failed), (2, 1))
        self.assertEqual(summary.notice, "1 de 3 falharam ao sincronizar com o Google Calendar")
        self.assertEqual(len(self.notifier.created), 3)

    async def test_queries_are_registered(self):
        result = await self.container.clinic_service().query(GetMonthlyGoalQuery("2025-03"))
        self.assertIsNone(result.goal)
        self.assertFalse(result.table_missing)

        timeline = await self.container.clinic_service().query(PatientFinancialTimelineQuery("pat-1"))
        self.assertEqual(timeline.records, [])
        self.assertEqual(await self.container.clinic_service().query(ListInstallmentsByStatusQuery("pago")), [])


class BootstrapContainerTests(IsolatedAsyncioTestCase):
    def setUp(self):
        composition_root.container = None

    def tearDown(self):
        composition_root.container = None

    @patch("config.structlog_config.configure_logging")
    async def test_detected_capabilities_reach_the_handlers(self, configure_logging):
        store = InMemoryRecordStore()
        store.missing_tables.add("financial_goals")

        with patch(
            "clinic_core.adapters.repositories.supabase_record_store.SupabaseRecordStore",
            return_value=store,
        ):
            container = await composition_root.bootstrap_container(settings)

        configure_logging.assert_called_once_with(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
        self.assertEqual(container.capabilities().missing_tables, frozenset({"financial_goals"}))
        result = await container.clinic_service().query(GetMonthlyGoalQuery("2025-03"))
        self.assertTrue(result.table_missing)
        self.assertEqual(store.calls_to("select", "financial_goals"), 0)


class RegistryAndMetricsTests(TestCase):
    def test_unknown_calendar_provider(self):
        with self.assertRaises(ValueError):
            get_calendar_notifier("outlook")

    def test_metrics_payload_exposes_clinic_series(self):
        body, content_type = metrics_payload()
        self.assertIn(b"clinic_store_request_seconds", body)
        self.assertIn(b"clinic_installments_paid_total", body)
        self.assertTrue(content_type.startswith("text/plain"))
