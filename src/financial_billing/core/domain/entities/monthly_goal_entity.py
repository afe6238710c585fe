from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from clinic_core.core.domain.entities._base import EntityMixin
from clinic_core.core.utils.date_utils import to_datetime
from clinic_core.core.utils.money import ZERO, to_decimal


@dataclass(slots=True)
class MonthlyGoalEntity(EntityMixin):
    month_year: str
    target_gross: Decimal = ZERO
    target_net: Decimal = ZERO
    target_profit: Decimal = ZERO
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.target_gross = to_decimal(self.target_gross)
        self.target_net = to_decimal(self.target_net)
        self.target_profit = to_decimal(self.target_profit)
        self.created_at = to_datetime(self.created_at)


@dataclass(frozen=True, slots=True)
class MonthlyGoalResult:
    """`table_missing` só é True quando a tabela de metas não existe."""
    goal: MonthlyGoalEntity | None
    table_missing: bool = False
