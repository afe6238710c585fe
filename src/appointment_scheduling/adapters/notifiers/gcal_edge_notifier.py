"""
Google Calendar via Supabase Edge Functions.
As credenciais do calendário ficam nos secrets do Supabase; aqui só vai a
chave do projeto.
"""
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from appointment_scheduling.adapters.notifiers.base import BaseNotifier
from appointment_scheduling.core.domain.repositories.calendar_notifier import (
    CalendarEntryRequest,
    CalendarEntryResult,
    CalendarEntryUpdate,
    CalendarNotifier,
)

logger = structlog.get_logger(__name__)


def to_gcal_iso(value: datetime) -> str:
    """A função espera ISO em UTC (`2025-02-10T17:00:00.000Z`)."""
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


class SupabaseEdgeCalendarNotifier(BaseNotifier, CalendarNotifier):
    CREATE_FN = "create-gcal-event"
    UPDATE_FN = "update-gcal-event"
    CANCEL_FN = "cancel-gcal-event"

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            provider="gcal",
            base_url=f"{supabase_url.rstrip('/')}/functions/v1",
            headers={"apikey": api_key, "Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def _invoke(self, function: str, body: dict[str, Any]) -> CalendarEntryResult:
        try:
            resp = await self._request(function, "POST", f"/{function}", json=body)
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            detail = _error_from_body(exc.response)
            logger.warning("gcal.http_error", function=function, status=exc.response.status_code, error=detail)
            return CalendarEntryResult.failure(detail or f"Erro ao chamar {function}", details=exc.response.status_code)
        except httpx.HTTPError as exc:
            logger.warning("gcal.transport_error", function=function, error=str(exc))
            return CalendarEntryResult.failure(str(exc) or f"Erro ao chamar {function}")
        except ValueError:
            return CalendarEntryResult.failure("Resposta inválida da função")

        if isinstance(data, dict) and data.get("ok"):
            return CalendarEntryResult.success(data.get("eventId"), data.get("htmlLink"))
        if isinstance(data, dict):
            return CalendarEntryResult.failure(data.get("error") or "Resposta inválida da função", data.get("details"))
        return CalendarEntryResult.failure("Resposta inválida da função")

    async def create_entry(self, request: CalendarEntryRequest) -> CalendarEntryResult:
        if not (request.title or "").strip():
            return CalendarEntryResult.failure("patientName, start e end são obrigatórios")
        body: dict[str, Any] = {
            "patientName": request.title.strip(),
            "start": to_gcal_iso(request.start),
            "end": to_gcal_iso(request.end),
        }
        if request.external_ref_id:
            body["appointmentId"] = request.external_ref_id
        if request.notes:
            body["notes"] = request.notes
        return await self._invoke(self.CREATE_FN, body)

    async def update_entry(self, update: CalendarEntryUpdate) -> CalendarEntryResult:
        if not (update.external_id or "").strip():
            return CalendarEntryResult.failure("eventId é obrigatório")
        body: dict[str, Any] = {"eventId": update.external_id.strip()}
        if update.title is not None:
            body["patientName"] = update.title
        if update.start is not None:
            body["start"] = to_gcal_iso(update.start)
        if update.end is not None:
            body["end"] = to_gcal_iso(update.end)
        if update.notes is not None:
            body["notes"] = update.notes
        result = await self._invoke(self.UPDATE_FN, body)
        if result.ok and not result.external_id:
            return CalendarEntryResult.success(update.external_id, result.link)
        return result

    async def delete_entry(self, external_id: str) -> CalendarEntryResult:
        if not (external_id or "").strip():
            return CalendarEntryResult.failure("eventId é obrigatório")
        return await self._invoke(self.CANCEL_FN, {"eventId": external_id.strip()})


def _error_from_body(resp: httpx.Response) -> str | None:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or None
    if isinstance(data, dict):
        return data.get("error") or data.get("message")
    return None
