from dataclasses import dataclass
from decimal import Decimal

from clinic_core.core.domain.events.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class FinancialRecordCreatedEvent(DomainEvent):
    record_id: str
    patient_id: str | None
    total_amount: Decimal
    installments_count: int


@dataclass(frozen=True, kw_only=True)
class InstallmentPaidEvent(DomainEvent):
    installment_id: str
    record_id: str
    payment_method: str
    fee_percent: Decimal
    fee_amount: Decimal
    net_amount: Decimal


@dataclass(frozen=True, kw_only=True)
class PaymentMethodChangedEvent(DomainEvent):
    record_id: str
    payment_method: str
