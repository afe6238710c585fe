from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

Row = dict[str, Any]


class RecordStore(ABC):
    """
    Porta para o store de registros (tabelas do Supabase/PostgREST).

    `filters` é um mapeamento coluna → valor com igualdade; `None` filtra
    por `IS NULL`. `in_` é coluna → valores aceitos. Erros sobem como
    `RecordStoreError` (ou `TableMissingError`).
    """

    @abstractmethod
    async def insert_batch(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        """Insere todas as linhas numa única requisição e devolve as persistidas (com ids)."""
        ...

    @abstractmethod
    async def update_by_id(self, table: str, record_id: str, fields: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
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
        """Linhas com `start <= field <= end`; limite `None` fica aberto."""
        ...

    @abstractmethod
    async def delete_by_id(self, table: str, record_id: str) -> None:
        ...

    @abstractmethod
    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        in_: Mapping[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        ...

    @abstractmethod
    async def update_where(self, table: str, filters: Mapping[str, Any], fields: Mapping[str, Any]) -> list[Row]:
        """Atualiza as linhas que casam com `filters` e devolve as linhas afetadas."""
        ...

    @abstractmethod
    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    async def upsert(self, table: str, row: Mapping[str, Any], on_conflict: str) -> Row:
        ...

    @abstractmethod
    async def table_exists(self, table: str) -> bool:
        """True se a tabela existe e responde."""
        ...
