from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

import structlog

# ───────────────────────────────────────────────
# CQRS com log de performance (handlers sync ou async)
# ───────────────────────────────────────────────

C = TypeVar('C')  # Command type
Q = TypeVar('Q')  # Query type
R = TypeVar('R')  # Result type

logger = structlog.get_logger(__name__)

# ───────────────────────────────────────────────
# DTOs
# ───────────────────────────────────────────────
@dataclass(frozen=True)
class CommandDTO:
    """Base para todos comandos de escrita (Create/Update/Delete)."""
    pass

@dataclass(frozen=True)
class QueryDTO:
    """Base para consultas de leitura."""
    pass

# ───────────────────────────────────────────────
# Handlers Protocols
# ───────────────────────────────────────────────
class CommandHandler(Protocol, Generic[C]):
    def handle(self, command: C) -> Any:
        """Processa um comando e aplica mudanças de estado."""
        ...

class QueryHandler(Protocol, Generic[Q, R]):
    def handle(self, query: Q) -> R | Awaitable[R]:
        """Processa uma consulta e retorna um resultado."""
        ...

# ───────────────────────────────────────────────
# Buses
# ───────────────────────────────────────────────
class _Bus:
    kind = "message"

    def __init__(self) -> None:
        self._handlers: dict[type, Any] = {}

    def register(self, message_type: type, handler: Any) -> None:
        self._handlers[message_type] = handler
        logger.debug(f"{self.kind}.handler_registered", message=message_type.__name__)

    def dispatch(self, message: Any) -> Any:
        """
        Executa o handler registrado. Handlers `async` devolvem um
        awaitable: o chamador faz `await bus.dispatch(...)`.
        """
        name = type(message).__name__
        handler = self._handlers.get(type(message))
        if not handler:
            raise ValueError(f"Nenhum handler para {self.kind}: {name}")
        start = time.perf_counter()
        logger.info(f"{self.kind}.dispatch", message=name)
        result = handler.handle(message)
        if inspect.isawaitable(result):
            return self._finish(name, result, start)
        self._log_done(name, start)
        return result

    async def _finish(self, name: str, awaitable: Awaitable[Any], start: float) -> Any:
        result = await awaitable
        self._log_done(name, start)
        return result

    def _log_done(self, name: str, start: float) -> None:
        elapsed = time.perf_counter() - start
        logger.info(f"{self.kind}.done", message=name, duration=f"{elapsed:.3f}s")


class CommandBus(_Bus):
    """Dispatcher de comandos com medição de performance."""
    kind = "command"


class QueryBus(_Bus):
    """Dispatcher de queries com medição de performance."""
    kind = "query"

# ───────────────────────────────────────────────
# Service de Alto Nível
# ───────────────────────────────────────────────
class BaseService:
    """Orquestra execução de comandos e queries via buses."""
    def __init__(self, command_bus: CommandBus, query_bus: QueryBus) -> None:
        self.commands = command_bus
        self.queries = query_bus

    def execute(self, command: CommandDTO) -> Any:
        return self.commands.dispatch(command)

    def query(self, query: QueryDTO) -> Any:
        return self.queries.dispatch(query)
