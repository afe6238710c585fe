from dataclasses import fields, is_dataclass
from typing import Any, ClassVar, TypeVar

T = TypeVar("T", bound="EntityMixin")

class EntityMixin:
    # coluna do store → campo da entidade, quando os nomes divergem
    ROW_ALIASES: ClassVar[dict[str, str]] = {}

    @classmethod
    def from_row(cls: type[T], row: dict[str, Any]) -> T:
        """
        Cria uma entidade a partir de uma linha do store.
        Aplica `ROW_ALIASES` e ignora colunas sem campo correspondente
        (PostgREST devolve `select=*`).
        """
        if not is_dataclass(cls):
            raise TypeError(f"{cls.__name__} deve ser um dataclass")
        names = {f.name for f in fields(cls)}
        data: dict[str, Any] = {}
        for column, value in row.items():
            name = cls.ROW_ALIASES.get(column, column)
            if name in names:
                data[name] = value
        return cls(**data)
