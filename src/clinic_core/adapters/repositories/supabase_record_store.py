from __future__ import annotations

import time
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from http import HTTPStatus
from typing import Any
from uuid import UUID

import backoff
import httpx
import structlog

from clinic_core.adapters.observability.metrics import STORE_ERRORS, STORE_REQUEST_SECONDS
from clinic_core.core.domain.events.exceptions import RecordStoreError, TableMissingError
from clinic_core.core.domain.repositories.record_store import RecordStore, Row
from config import settings

logger = structlog.get_logger(__name__)

TRANSIENT_STATUSES = {HTTPStatus.BAD_GATEWAY, HTTPStatus.SERVICE_UNAVAILABLE, HTTPStatus.GATEWAY_TIMEOUT}
TABLE_MISSING_CODES = {"42P01", "PGRST116", "PGRST205"}


class TransientStoreError(RecordStoreError):
    """502/503/504: elegível a retry."""
    pass


def is_table_missing(code: str | None, status: int | None, message: str, table: str) -> bool:
    if code in TABLE_MISSING_CODES:
        return True
    return status == HTTPStatus.NOT_FOUND and table in (message or "")


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [to_jsonable(v) for v in value]
    return value


def _literal(value: Any) -> str:
    value = to_jsonable(value)
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def _quoted(value: Any) -> str:
    return '"' + _literal(value).replace('"', '\\"') + '"'


def build_params(
    *,
    filters: Mapping[str, Any] | None = None,
    in_: Mapping[str, Iterable[Any]] | None = None,
    order_by: str | None = None,
) -> list[tuple[str, str]]:
    """Traduz filtros simples para a sintaxe de query do PostgREST."""
    params: list[tuple[str, str]] = [("select", "*")]
    for column, value in (filters or {}).items():
        params.append((column, "is.null" if value is None else f"eq.{_literal(value)}"))
    for column, values in (in_ or {}).items():
        params.append((column, "in.(" + ",".join(_quoted(v) for v in values) + ")"))
    if order_by:
        params.append(("order", order_by if "." in order_by else f"{order_by}.asc"))
    return params


class SupabaseRecordStore(RecordStore):
    """
    RecordStore sobre a API REST do Supabase (PostgREST) com httpx assíncrono.
    Retry com backoff só para 502/503/504 e falhas de rede; 4xx sobe direto.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={"apikey": api_key, "Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ───────────────────────── HTTP ─────────────────────────
    @backoff.on_exception(
        backoff.expo,
        (httpx.TransportError, TransientStoreError),
        max_tries=lambda: settings.SUPABASE_MAX_TRIES,
        jitter=None,
    )
    async def _send(
        self,
        method: str,
        table: str,
        operation: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        start = time.perf_counter()
        try:
            resp = await self._client.request(method, f"/{table}", params=params, json=json, headers=headers)
        finally:
            STORE_REQUEST_SECONDS.labels(table, operation).observe(time.perf_counter() - start)
        if resp.status_code >= HTTPStatus.BAD_REQUEST:
            STORE_ERRORS.labels(table, operation).inc()
            raise self._to_error(resp, table)
        return resp

    async def _request(self, method: str, table: str, operation: str, **kw: Any) -> httpx.Response:
        try:
            return await self._send(method, table, operation, **kw)
        except httpx.TransportError as exc:
            logger.error("store.transport_error", table=table, operation=operation, error=str(exc))
            raise RecordStoreError(f"Falha de rede ao acessar {table}: {exc}", table=table) from exc

    @staticmethod
    def _to_error(resp: httpx.Response, table: str) -> RecordStoreError:
        code = message = details = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message")
            details = body.get("details") or body.get("hint")
        message = message or resp.text or resp.reason_phrase
        status = resp.status_code
        if status in TRANSIENT_STATUSES:
            exc_cls: type[RecordStoreError] = TransientStoreError
        elif is_table_missing(code, status, message, table):
            exc_cls = TableMissingError
        else:
            exc_cls = RecordStoreError
        return exc_cls(message, code=code, status=status, details=details, table=table)

    # ───────────────────────── Porta ─────────────────────────
    async def insert_batch(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        if not rows:
            return []
        resp = await self._request(
            "POST", table, "insert",
            json=[to_jsonable(r) for r in rows],
            headers={"Prefer": "return=representation"},
        )
        return resp.json() or []

    async def update_by_id(self, table: str, record_id: str, fields: Mapping[str, Any]) -> None:
        await self.update_where(table, {"id": record_id}, fields)

    async def update_where(self, table: str, filters: Mapping[str, Any], fields: Mapping[str, Any]) -> list[Row]:
        params = build_params(filters=filters)[1:]
        resp = await self._request(
            "PATCH", table, "update",
            params=params,
            json=to_jsonable(fields),
            headers={"Prefer": "return=representation"},
        )
        return (resp.json() or []) if resp.content else []

    async def query_by_time_range(
        self,
        table: str,
        field: str,
        start: Any | None,
        end: Any | None,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        params = build_params(filters=filters, order_by=order_by)
        if start is not None:
            params.append((field, f"gte.{_literal(start)}"))
        if end is not None:
            params.append((field, f"lte.{_literal(end)}"))
        resp = await self._request("GET", table, "select", params=params)
        return resp.json()

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        in_: Mapping[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        resp = await self._request("GET", table, "select", params=build_params(filters=filters, in_=in_, order_by=order_by))
        return resp.json()

    async def delete_by_id(self, table: str, record_id: str) -> None:
        await self.delete_where(table, {"id": record_id})

    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> None:
        await self._request("DELETE", table, "delete", params=build_params(filters=filters)[1:])

    async def upsert(self, table: str, row: Mapping[str, Any], on_conflict: str) -> Row:
        resp = await self._request(
            "POST", table, "upsert",
            params=[("on_conflict", on_conflict)],
            json=to_jsonable(row),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        data = resp.json()
        return data[0] if isinstance(data, list) and data else (data or {})

    async def table_exists(self, table: str) -> bool:
        try:
            await self._request("GET", table, "exists", params=[("select", "*"), ("limit", "1")])
        except TableMissingError:
            return False
        except RecordStoreError as exc:
            # sem como afirmar ausência: assume presente e deixa o erro real aparecer no uso
            logger.warning("store.table_check_inconclusive", table=table, error=str(exc))
        return True
