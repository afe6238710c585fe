"""
Adapters HTTP (PostgREST e Edge Functions) contra `httpx.MockTransport`.
"""
from __future__ import annotations

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest import IsolatedAsyncioTestCase, TestCase
from zoneinfo import ZoneInfo

import httpx

from appointment_scheduling.adapters.notifiers.gcal_edge_notifier import (
    SupabaseEdgeCalendarNotifier,
    to_gcal_iso,
)
from appointment_scheduling.core.domain.repositories.calendar_notifier import (
    CalendarEntryRequest,
    CalendarEntryUpdate,
)
from clinic_core.adapters.context.capabilities import (
    FINANCIAL_GOALS_TABLE,
    OPTIONAL_TABLES,
    PAYMENT_FEE_RULES_TABLE,
    CapabilityDetector,
)
from clinic_core.adapters.repositories.supabase_record_store import (
    SupabaseRecordStore,
    build_params,
    to_jsonable,
)
from clinic_core.core.domain.events.exceptions import RecordStoreError, TableMissingError

URL = "https://clinic.supabase.co"
SP = ZoneInfo("America/Sao_Paulo")


class Recorder:
    """Handler do MockTransport que guarda as requisições e devolve respostas roteirizadas."""

    def __init__(self, *responses: httpx.Response | Exception):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class BuildParamsTests(TestCase):
    def test_postgrest_syntax(self):
        params = build_params(
            filters={"status": "pendente", "paid_date": None, "is_active": True},
            in_={"id": ["a", "b"]},
            order_by="due_date",
        )
        self.assertEqual(params, [
            ("select", "*"),
            ("status", "eq.pendente"),
            ("paid_date", "is.null"),
            ("is_active", "eq.true"),
            ("id", 'in.("a","b")'),
            ("order", "due_date.asc"),
        ])

    def test_to_jsonable(self):
        self.assertEqual(
            to_jsonable({"v": Decimal("10.50"), "d": date(2025, 1, 31), "items": [Decimal("1")]}),
            {"v": 10.5, "d": "2025-01-31", "items": [1.0]},
        )


class SupabaseRecordStoreTests(IsolatedAsyncioTestCase):
    def _store(self, recorder: Recorder) -> SupabaseRecordStore:
        return SupabaseRecordStore(URL, "anon-key", transport=httpx.MockTransport(recorder))

    async def test_insert_batch_posts_all_rows_once(self):
        recorder = Recorder(httpx.Response(201, json=[{"id": "1"}, {"id": "2"}]))
        store = self._store(recorder)

        rows = await store.insert_batch("appointments", [{"budget": Decimal("190.00")}, {"budget": Decimal("5")}])

        self.assertEqual([r["id"] for r in rows], ["1", "2"])
        self.assertEqual(len(recorder.requests), 1)
        request = recorder.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/rest/v1/appointments")
        self.assertEqual(request.headers["Prefer"], "return=representation")
        self.assertEqual(request.headers["apikey"], "anon-key")
        self.assertEqual(request.headers["Authorization"], "Bearer anon-key")
        self.assertEqual(json.loads(request.content), [{"budget": 190.0}, {"budget": 5.0}])
        await store.aclose()

    async def test_empty_insert_makes_no_request(self):
        recorder = Recorder(httpx.Response(201, json=[]))
        self.assertEqual(await self._store(recorder).insert_batch("appointments", []), [])
        self.assertEqual(recorder.requests, [])

    async def test_update_and_range_query(self):
        recorder = Recorder(httpx.Response(204), httpx.Response(200, json=[{"id": "1"}]))
        store = self._store(recorder)
        start = datetime(2025, 3, 1, tzinfo=timezone.utc)

        await store.update_by_id("appointments", "1", {"gcal_status": "synced"})
        await store.query_by_time_range("appointments", "start_time", start, None, order_by="start_time")

        patch, get = recorder.requests
        self.assertEqual(patch.method, "PATCH")
        self.assertEqual(patch.url.params["id"], "eq.1")
        self.assertEqual(json.loads(patch.content), {"gcal_status": "synced"})
        self.assertEqual(get.url.params["start_time"], "gte.2025-03-01T00:00:00+00:00")
        self.assertEqual(get.url.params["order"], "start_time.asc")

    async def test_update_where_returns_affected_rows(self):
        recorder = Recorder(httpx.Response(200, json=[{"id": "i1", "status": "pago"}]), httpx.Response(200, json=[]))
        store = self._store(recorder)

        updated = await store.update_where("installments", {"id": "i1", "status": "pendente"}, {"status": "pago"})
        none = await store.update_where("installments", {"id": "i1", "status": "pendente"}, {"status": "pago"})

        self.assertEqual(updated, [{"id": "i1", "status": "pago"}])
        self.assertEqual(none, [])
        request = recorder.requests[0]
        self.assertEqual(request.headers["Prefer"], "return=representation")
        self.assertEqual(request.url.params["status"], "eq.pendente")

    async def test_upsert_uses_on_conflict(self):
        recorder = Recorder(httpx.Response(201, json=[{"id": "g1", "month_year": "2025-03"}]))
        row = await self._store(recorder).upsert("financial_goals", {"month_year": "2025-03"}, on_conflict="month_year")

        self.assertEqual(row["id"], "g1")
        self.assertEqual(recorder.requests[0].url.params["on_conflict"], "month_year")
        self.assertIn("merge-duplicates", recorder.requests[0].headers["Prefer"])

    async def test_missing_table_error(self):
        body = {"code": "42P01", "message": 'relation "public.financial_goals" does not exist'}
        recorder = Recorder(httpx.Response(404, json=body))
        with self.assertRaises(TableMissingError) as ctx:
            await self._store(recorder).select("financial_goals")
        self.assertEqual(ctx.exception.code, "42P01")

    async def test_auth_errors_are_not_retried(self):
        recorder = Recorder(httpx.Response(401, json={"message": "JWT expired"}))
        with self.assertRaises(RecordStoreError) as ctx:
            await self._store(recorder).select("appointments")
        self.assertNotIsInstance(ctx.exception, TableMissingError)
        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(len(recorder.requests), 1)

    async def test_transient_error_is_retried(self):
        recorder = Recorder(httpx.Response(503, text="unavailable"), httpx.Response(200, json=[{"id": "1"}]))
        rows = await self._store(recorder).select("appointments")
        self.assertEqual(rows, [{"id": "1"}])
        self.assertEqual(len(recorder.requests), 2)

    async def test_table_exists(self):
        missing = Recorder(httpx.Response(404, json={"code": "PGRST205", "message": "table not found"}))
        self.assertFalse(await self._store(missing).table_exists("financial_goals"))

        present = Recorder(httpx.Response(200, json=[]))
        self.assertTrue(await self._store(present).table_exists("financial_goals"))
        self.assertEqual(present.requests[0].url.params["limit"], "1")

        forbidden = Recorder(httpx.Response(403, json={"message": "permission denied"}))
        self.assertTrue(await self._store(forbidden).table_exists("financial_goals"))


class CapabilityDetectorTests(IsolatedAsyncioTestCase):
    async def test_collects_missing_tables(self):
        def handler(request: httpx.Request) -> httpx.Response:
            table = request.url.path.rsplit("/", 1)[-1]
            if table in (FINANCIAL_GOALS_TABLE, PAYMENT_FEE_RULES_TABLE):
                return httpx.Response(404, json={"code": "42P01", "message": f"relation {table} does not exist"})
            return httpx.Response(200, json=[])

        store = SupabaseRecordStore(URL, "k", transport=httpx.MockTransport(handler))
        caps = await CapabilityDetector.detect(store, OPTIONAL_TABLES)

        self.assertEqual(caps.missing_tables, frozenset({FINANCIAL_GOALS_TABLE, PAYMENT_FEE_RULES_TABLE}))
        self.assertFalse(caps.has_table(FINANCIAL_GOALS_TABLE))
        self.assertTrue(caps.has_table("appointment_procedures"))


class EdgeCalendarNotifierTests(IsolatedAsyncioTestCase):
    def _notifier(self, recorder: Recorder) -> SupabaseEdgeCalendarNotifier:
        return SupabaseEdgeCalendarNotifier(URL, "anon-key", transport=httpx.MockTransport(recorder))

    def _request(self) -> CalendarEntryRequest:
        return CalendarEntryRequest(
            title="Maria Souza",
            start=datetime(2025, 3, 1, 9, 0, tzinfo=SP),
            end=datetime(2025, 3, 1, 9, 30, tzinfo=SP),
            external_ref_id="apt-1",
            notes="Limpeza",
        )

    def test_iso_is_utc_with_millis(self):
        self.assertEqual(to_gcal_iso(datetime(2025, 3, 1, 9, 0, tzinfo=SP)), "2025-03-01T12:00:00.000Z")

    async def test_create_entry(self):
        recorder = Recorder(httpx.Response(200, json={"ok": True, "eventId": "evt-1", "htmlLink": "https://g/evt-1"}))

        result = await self._notifier(recorder).create_entry(self._request())

        self.assertTrue(result.ok)
        self.assertEqual((result.external_id, result.link), ("evt-1", "https://g/evt-1"))
        request = recorder.requests[0]
        self.assertEqual(request.url.path, "/functions/v1/create-gcal-event")
        self.assertEqual(json.loads(request.content), {
            "patientName": "Maria Souza",
            "start": "2025-03-01T12:00:00.000Z",
            "end": "2025-03-01T12:30:00.000Z",
            "appointmentId": "apt-1",
            "notes": "Limpeza",
        })

    async def test_function_error_is_a_value(self):
        recorder = Recorder(httpx.Response(400, json={"ok": False, "error": "Token do Google expirado"}))
        result = await self._notifier(recorder).create_entry(self._request())
        self.assertFalse(result.ok)
        self.assertEqual(result.error, "Token do Google expirado")
        self.assertEqual(len(recorder.requests), 1)

    async def test_ok_false_body_is_failure(self):
        recorder = Recorder(httpx.Response(200, json={"ok": False, "error": "calendar not found"}))
        result = await self._notifier(recorder).create_entry(self._request())
        self.assertFalse(result.ok)
        self.assertEqual(result.error, "calendar not found")

    async def test_update_and_cancel(self):
        recorder = Recorder(httpx.Response(200, json={"ok": True}))
        notifier = self._notifier(recorder)

        updated = await notifier.update_entry(CalendarEntryUpdate(external_id="evt-9", external_ref_id="apt-1", notes="x"))
        cancelled = await notifier.delete_entry("evt-9")

        self.assertEqual(updated.external_id, "evt-9")
        self.assertTrue(cancelled.ok)
        self.assertEqual(json.loads(recorder.requests[0].content), {"eventId": "evt-9", "notes": "x"})
        self.assertEqual(recorder.requests[1].url.path, "/functions/v1/cancel-gcal-event")

    async def test_missing_fields_short_circuit(self):
        recorder = Recorder(httpx.Response(200, json={"ok": True}))
        notifier = self._notifier(recorder)
        blank = CalendarEntryRequest(title=" ", start=datetime.now(SP), end=datetime.now(SP), external_ref_id="a")

        self.assertFalse((await notifier.create_entry(blank)).ok)
        self.assertFalse((await notifier.delete_entry("")).ok)
        self.assertEqual(recorder.requests, [])
