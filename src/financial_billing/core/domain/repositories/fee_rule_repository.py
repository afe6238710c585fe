from abc import ABC, abstractmethod

from financial_billing.core.domain.entities.fee_rule_entity import FeeRule


class FeeRuleTable(ABC):
    @abstractmethod
    async def list_rules(self, provider: str) -> list[FeeRule]:
        """Regras ativas do provedor; tabela ausente → lista vazia."""
        ...
