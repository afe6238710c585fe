from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from clinic_core.core.application.dtos.base_dto import CamelModel
from clinic_core.core.utils.money import ZERO, round2
from financial_billing.core.domain.entities.payment_method import PaymentMethod


class InstallmentsConfigDTO(CamelModel):
    count: int = Field(ge=1)
    payment_method: PaymentMethod
    first_payment_date: date


class GrossNetBucket(CamelModel):
    """Bruto/taxa/líquido somados de forma independente."""
    gross: Decimal = ZERO
    fee: Decimal = ZERO
    net: Decimal = ZERO
    count: int = 0

    def add(self, gross: Decimal, fee: Decimal, net: Decimal) -> None:
        self.gross += gross
        self.fee += fee
        self.net += net
        self.count += 1

    def rounded(self) -> "GrossNetBucket":
        return GrossNetBucket(gross=round2(self.gross), fee=round2(self.fee), net=round2(self.net), count=self.count)


class MethodRevenue(CamelModel):
    paid: GrossNetBucket = Field(default_factory=GrossNetBucket)
    expected: GrossNetBucket = Field(default_factory=GrossNetBucket)


class TotalFees(CamelModel):
    fees: Decimal = ZERO
    gross: Decimal = ZERO
    pct: Decimal = ZERO


class AverageTicket(CamelModel):
    avg_gross: Decimal = ZERO
    avg_net: Decimal = ZERO
    count: int = 0


class MonthlyFinancialSummary(CamelModel):
    month_year: str
    paid: GrossNetBucket
    pending: GrossNetBucket
    overdue: GrossNetBucket
    by_method: dict[str, MethodRevenue] = {}
    total_fees: TotalFees = Field(default_factory=TotalFees)
    average_ticket: AverageTicket = Field(default_factory=AverageTicket)


class PatientFinancialSummary(CamelModel):
    patient_id: str
    overdue: GrossNetBucket
    pending: GrossNetBucket
    paid_total: Decimal = ZERO
    overdue_installments_count: int = 0
    last_paid_at: date | None = None


class ReceivableBucket(CamelModel):
    label: str
    month_year: str | None = None       # None no balde "Em atraso"
    gross: Decimal = ZERO
    fees: Decimal = ZERO
    net: Decimal = ZERO


# ───────────────────────── linha do tempo ─────────────────────────
class InstallmentDTO(CamelModel):
    id: str | None = None
    record_id: str
    installment_number: int
    gross_amount: Decimal
    due_date: date
    status: str
    payment_method: str | None = None
    payment_provider: str | None = None
    paid_date: date | None = None
    paid_at: datetime | None = None
    fee_percent_applied: Decimal | None = None
    fee_amount: Decimal | None = None
    net_amount: Decimal | None = None


class FinancialRecordItemDTO(CamelModel):
    """Item gravado em `procedure_items` com os preços congelados na venda."""
    id: str | None = None
    procedure_catalog_id: str | None = None
    procedure_name_snapshot: str = ""
    cost_price_snapshot: Decimal = ZERO
    final_price_snapshot: Decimal = ZERO
    quantity: int = 1
    discount: Decimal = ZERO
    profit_snapshot: Decimal = ZERO


class FinancialRecordDTO(CamelModel):
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


class FinancialRecordWithInstallmentsDTO(CamelModel):
    record: FinancialRecordDTO
    items: list[FinancialRecordItemDTO] = []
    installments: list[InstallmentDTO] = []


class PatientFinancialTimeline(CamelModel):
    patient_id: str
    patient_name: str | None = None
    records: list[FinancialRecordWithInstallmentsDTO] = []
