from dataclasses import dataclass, field
from decimal import Decimal

from clinic_core.core.application.cqrs import CommandDTO
from clinic_core.core.application.dtos.plan_item_dto import PlanItemDTO
from financial_billing.core.application.dtos.financial_dto import InstallmentsConfigDTO


@dataclass(frozen=True, slots=True)
class CreateFinancialRecordCommand(CommandDTO):
    patient_id: str
    patient_name: str
    items: list[PlanItemDTO]
    installments: InstallmentsConfigDTO
    appointment_id: str | None = None
    procedure_type: str | None = None


@dataclass(frozen=True, slots=True)
class MarkInstallmentPaidCommand(CommandDTO):
    installment_id: str
    payment_method: str


@dataclass(frozen=True, slots=True)
class UpdatePaymentMethodCommand(CommandDTO):
    record_id: str
    payment_method: str


@dataclass(frozen=True, slots=True)
class UpsertMonthlyGoalCommand(CommandDTO):
    month_year: str
    target_gross: Decimal = field(default=Decimal("0"))
    target_net: Decimal = field(default=Decimal("0"))
    target_profit: Decimal = field(default=Decimal("0"))
