import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from clinic_core.core.domain.repositories.record_store import RecordStore

logger = structlog.get_logger(__name__)

# Tabelas opcionais: o sistema funciona (degradado) sem elas
APPOINTMENT_PROCEDURES_TABLE = "appointment_procedures"
PROCEDURE_ITEMS_TABLE = "procedure_items"
PAYMENT_FEE_RULES_TABLE = "payment_fee_rules"
FINANCIAL_GOALS_TABLE = "financial_goals"

OPTIONAL_TABLES = (
    APPOINTMENT_PROCEDURES_TABLE,
    PROCEDURE_ITEMS_TABLE,
    PAYMENT_FEE_RULES_TABLE,
    FINANCIAL_GOALS_TABLE,
)


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Resultado imutável da sondagem de tabelas feita na inicialização."""
    missing_tables: frozenset[str] = field(default_factory=frozenset)

    def has_table(self, table: str) -> bool:
        return table not in self.missing_tables


class CapabilityDetector:
    @staticmethod
    async def detect(store: RecordStore, tables: Iterable[str] = OPTIONAL_TABLES) -> Capabilities:
        tables = list(tables)
        present = await asyncio.gather(*(store.table_exists(t) for t in tables))
        missing = frozenset(t for t, ok in zip(tables, present, strict=True) if not ok)
        if missing:
            logger.warning("capabilities.tables_missing", tables=sorted(missing))
        else:
            logger.info("capabilities.all_tables_present", tables=tables)
        return Capabilities(missing_tables=missing)
