from dataclasses import dataclass
from decimal import Decimal

from clinic_core.core.domain.entities._base import EntityMixin
from clinic_core.core.utils.money import to_decimal


@dataclass(slots=True)
class FeeRule(EntityMixin):
    """Linha de `payment_fee_rules`; `installments=None` vale para débito."""
    provider: str
    payment_method: str
    fee_percent: Decimal
    installments: int | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        self.fee_percent = to_decimal(self.fee_percent)
        if self.installments is not None:
            self.installments = int(self.installments)
