"""
RecordStore em memória para os testes.

• Atribui ids sequenciais (`<tabela>-<n>`) no insert.
• Suporta filtros de igualdade, `in_`, intervalo e ordenação.
• Permite injetar falhas por (operação, tabela), tabelas ausentes e
  inserts "curtos" (o store devolve menos linhas do que recebeu).
"""
from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from clinic_core.core.domain.events.exceptions import RecordStoreError, TableMissingError
from clinic_core.core.domain.repositories.record_store import RecordStore, Row


def _matches(row: Row, filters: Mapping[str, Any] | None, in_: Mapping[str, Iterable[Any]] | None = None) -> bool:
    for column, value in (filters or {}).items():
        if value is None:
            if row.get(column) is not None:
                return False
        elif row.get(column) != value:
            return False
    for column, values in (in_ or {}).items():
        if row.get(column) not in set(values):
            return False
    return True


def _sorted(rows: list[Row], order_by: str | None) -> list[Row]:
    if not order_by:
        return rows
    column, _, direction = order_by.partition(".")
    ordered = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column) or 0))
    return list(reversed(ordered)) if direction == "desc" else ordered


class InMemoryRecordStore(RecordStore):
    def __init__(self, tables: Mapping[str, list[Row]] | None = None) -> None:
        self.tables: dict[str, list[Row]] = defaultdict(list)
        for table, rows in (tables or {}).items():
            self.tables[table] = [dict(r) for r in rows]
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], RecordStoreError] = {}
        self.missing_tables: set[str] = set()
        self.short_inserts: dict[str, int] = {}
        # cede o loop em cada select: permite intercalar handlers concorrentes
        self.yield_on_select = False
        self._ids = itertools.count(1)

    # ───────────────────────── injeção de falhas ─────────────────────────
    def fail(self, operation: str, table: str, message: str = "falha simulada") -> None:
        self.failures[(operation, table)] = RecordStoreError(message, code="XX000", status=500, table=table)

    def drop_on_insert(self, table: str, count: int) -> None:
        """O próximo insert em `table` devolve (e persiste) `count` linhas a menos."""
        self.short_inserts[table] = count

    def calls_to(self, operation: str, table: str) -> int:
        return self.calls.count((operation, table))

    def _enter(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if table in self.missing_tables:
            raise TableMissingError(f'relation "public.{table}" does not exist', code="42P01", status=404, table=table)
        if (operation, table) in self.failures:
            raise self.failures[(operation, table)]

    # ───────────────────────── porta ─────────────────────────
    async def insert_batch(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        self._enter("insert", table)
        persisted = []
        for row in rows:
            stored = copy.deepcopy(dict(row))
            stored.setdefault("id", f"{table}-{next(self._ids)}")
            persisted.append(stored)
        drop = self.short_inserts.pop(table, 0)
        if drop:
            persisted = persisted[: max(0, len(persisted) - drop)]
        self.tables[table].extend(persisted)
        return copy.deepcopy(persisted)

    async def update_by_id(self, table: str, record_id: str, fields: Mapping[str, Any]) -> None:
        await self.update_where(table, {"id": record_id}, fields)

    async def update_where(self, table: str, filters: Mapping[str, Any], fields: Mapping[str, Any]) -> list[Row]:
        self._enter("update", table)
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(copy.deepcopy(dict(fields)))
                updated.append(copy.deepcopy(row))
        return updated

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
        self._enter("select", table)
        found = []
        for row in self.tables[table]:
            value = row.get(field)
            if value is None or not _matches(row, filters):
                continue
            if start is not None and value < start:
                continue
            if end is not None and value > end:
                continue
            found.append(copy.deepcopy(row))
        return _sorted(found, order_by)

    async def delete_by_id(self, table: str, record_id: str) -> None:
        await self.delete_where(table, {"id": record_id})

    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> None:
        self._enter("delete", table)
        self.tables[table] = [r for r in self.tables[table] if not _matches(r, filters)]

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        in_: Mapping[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        self._enter("select", table)
        if self.yield_on_select:
            await asyncio.sleep(0)
        found = [copy.deepcopy(r) for r in self.tables[table] if _matches(r, filters, in_)]
        return _sorted(found, order_by)

    async def upsert(self, table: str, row: Mapping[str, Any], on_conflict: str) -> Row:
        self._enter("upsert", table)
        for existing in self.tables[table]:
            if existing.get(on_conflict) == row.get(on_conflict):
                existing.update(copy.deepcopy(dict(row)))
                return copy.deepcopy(existing)
        stored = {"id": f"{table}-{next(self._ids)}", **copy.deepcopy(dict(row))}
        self.tables[table].append(stored)
        return copy.deepcopy(stored)

    async def table_exists(self, table: str) -> bool:
        return table not in self.missing_tables
