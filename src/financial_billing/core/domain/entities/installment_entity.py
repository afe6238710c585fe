from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from clinic_core.core.domain.entities._base import EntityMixin
from clinic_core.core.domain.events.exceptions import ValidationError
from clinic_core.core.utils.date_utils import is_overdue, to_date, to_datetime
from clinic_core.core.utils.money import round2, to_decimal

INSTALLMENTS_TABLE = "installments"


class InstallmentStatus(str, Enum):
    PENDING = "pendente"
    PAID = "pago"


@dataclass(slots=True)
class InstallmentEntity(EntityMixin):
    """
    Parcela de um registro financeiro.

    Nasce pendente; ao ser paga grava percentual, taxa e líquido, que
    ficam congelados (mudanças posteriores na tabela de taxas não afetam).
    """
    ROW_ALIASES: ClassVar[dict[str, str]] = {
        "procedure_id": "record_id",
        "installment_value": "gross_amount",
    }

    id: str | None
    record_id: str
    installment_number: int
    gross_amount: Decimal
    due_date: date
    status: str = InstallmentStatus.PENDING.value
    payment_method: str | None = None
    paid_date: date | None = None
    paid_at: datetime | None = None
    payment_provider: str | None = None
    fee_percent_applied: Decimal | None = None
    fee_amount: Decimal | None = None
    net_amount: Decimal | None = None

    def __post_init__(self) -> None:
        self.gross_amount = to_decimal(self.gross_amount)
        self.due_date = to_date(self.due_date)
        self.paid_date = to_date(self.paid_date)
        self.paid_at = to_datetime(self.paid_at)
        for name in ("fee_percent_applied", "fee_amount", "net_amount"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, to_decimal(value))

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID.value

    @property
    def is_pending(self) -> bool:
        return self.status == InstallmentStatus.PENDING.value

    @property
    def has_fee_snapshot(self) -> bool:
        return self.fee_amount is not None and self.net_amount is not None

    def is_overdue(self, today: date) -> bool:
        return self.is_pending and is_overdue(self.due_date, today)

    def mark_paid(
        self,
        *,
        method: str,
        provider: str | None,
        fee_percent: Decimal,
        fee_amount: Decimal,
        net_amount: Decimal,
        paid_date: date,
        paid_at: datetime,
    ) -> None:
        if self.is_paid:
            raise ValidationError(f"Parcela {self.id} já está paga")
        self.status = InstallmentStatus.PAID.value
        self.payment_method = method
        self.payment_provider = provider
        self.fee_percent_applied = fee_percent
        self.fee_amount = fee_amount
        self.net_amount = net_amount
        self.paid_date = paid_date
        self.paid_at = paid_at

    def paid_fields(self) -> dict[str, Any]:
        """Colunas gravadas no momento do pagamento."""
        return {
            "status": self.status,
            "paid_date": self.paid_date,
            "paid_at": self.paid_at,
            "payment_method": self.payment_method,
            "payment_provider": self.payment_provider,
            "fee_percent_applied": self.fee_percent_applied,
            "fee_amount": self.fee_amount,
            "net_amount": self.net_amount,
        }

    @staticmethod
    def new_row(
        record_id: str,
        number: int,
        gross: Decimal,
        due_date: date,
        method: str,
    ) -> dict[str, Any]:
        return {
            "procedure_id": record_id,
            "installment_number": number,
            "installment_value": round2(gross),
            "due_date": due_date,
            "status": InstallmentStatus.PENDING.value,
            "payment_method": method,
        }
