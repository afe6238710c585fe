from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from clinic_core.core.domain.entities._base import EntityMixin
from clinic_core.core.utils.date_utils import to_date, to_datetime
from clinic_core.core.utils.money import ZERO, to_decimal

FINANCIAL_RECORDS_TABLE = "procedures"


@dataclass(slots=True)
class FinancialRecordEntity(EntityMixin):
    """Registro financeiro (venda) de um paciente; as parcelas apontam para ele."""
    id: str
    patient_id: str | None = None
    client_name: str | None = None
    procedure_type: str | None = None
    total_amount: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_profit: Decimal = ZERO
    profit_margin: Decimal = ZERO
    total_installments: int = 1
    payment_method: str | None = None
    payment_provider: str | None = None
    first_payment_date: date | None = None
    status: str | None = None
    appointment_id: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.total_amount = to_decimal(self.total_amount)
        self.total_cost = to_decimal(self.total_cost)
        self.total_profit = to_decimal(self.total_profit)
        self.profit_margin = to_decimal(self.profit_margin)
        self.total_installments = int(self.total_installments or 1)
        self.first_payment_date = to_date(self.first_payment_date)
        self.created_at = to_datetime(self.created_at)
