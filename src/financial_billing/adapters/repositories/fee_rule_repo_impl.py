import structlog

from clinic_core.adapters.context.capabilities import PAYMENT_FEE_RULES_TABLE, Capabilities
from clinic_core.core.domain.events.exceptions import TableMissingError
from clinic_core.core.domain.repositories.record_store import RecordStore
from financial_billing.core.domain.entities.fee_rule_entity import FeeRule
from financial_billing.core.domain.repositories.fee_rule_repository import FeeRuleTable

log = structlog.get_logger(__name__)


class FeeRuleRepoImpl(FeeRuleTable):
    def __init__(self, store: RecordStore, capabilities: Capabilities):
        self.store = store
        self.capabilities = capabilities

    async def list_rules(self, provider: str) -> list[FeeRule]:
        if not self.capabilities.has_table(PAYMENT_FEE_RULES_TABLE):
            return []
        try:
            rows = await self.store.select(
                PAYMENT_FEE_RULES_TABLE,
                filters={"provider": provider, "is_active": True},
            )
        except TableMissingError:
            log.warning("fee_rules.table_missing", provider=provider)
            return []
        return [FeeRule.from_row(r) for r in rows if r.get("payment_method")]
