from typing import Any


class ClinicCoreError(Exception):
    """Classe base para todas as exceções do núcleo da clínica."""
    pass

class ValidationError(ClinicCoreError):
    """
    Entrada inválida detectada antes de qualquer escrita.
    Exemplos:
    - intervalo de recorrência ou duração não positivos.
    - parcela já paga sendo marcada novamente.
    """
    pass

class IntegrityError(ClinicCoreError):
    """
    A escrita autoritativa não persistiu o que foi pedido:
    falha do store, zero linhas ou contagem divergente no insert em lote.
    """
    pass

class SecondaryWriteError(ClinicCoreError):
    """
    A escrita principal deu certo, mas a secundária (itens) falhou.
    Carrega quantos registros principais existem para o chamador reconciliar
    e, quando eles ficam gravados, a task de sincronização já agendada.
    """
    def __init__(
        self,
        message: str,
        *,
        created_count: int = 0,
        recurrence_group_id: str | None = None,
        record_id: str | None = None,
        sync_task: Any = None,
    ) -> None:
        super().__init__(message)
        self.created_count = created_count
        self.recurrence_group_id = recurrence_group_id
        self.record_id = record_id
        self.sync_task = sync_task

class NotFoundError(ClinicCoreError):
    """Registro (agendamento, parcela, registro financeiro) inexistente."""
    pass

class RecordStoreError(ClinicCoreError):
    """Erro devolvido pelo store de registros (PostgREST ou transporte)."""
    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        details: Any = None,
        table: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details
        self.table = table

class TableMissingError(RecordStoreError):
    """A tabela não existe no schema (42P01 / PGRST116 / 404 citando a tabela)."""
    pass
