"""
Agregações financeiras (mês, paciente, recebíveis futuros).

Regras:
- parcela paga entra pelo `paid_date` e usa os valores congelados no
  pagamento (taxa/líquido nunca são recalculados);
- parcela pendente com vencimento antes de hoje vai para "em atraso",
  nunca para o pendente do mês;
- bruto, taxa e líquido são somados separadamente e arredondados no fim.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from decimal import Decimal

import structlog

from clinic_core.core.utils.date_utils import add_months, month_bounds, month_key
from clinic_core.core.utils.money import ZERO, percent_of, round2
from financial_billing.core.application.dtos.financial_dto import (
    AverageTicket,
    GrossNetBucket,
    MethodRevenue,
    MonthlyFinancialSummary,
    PatientFinancialSummary,
    ReceivableBucket,
    TotalFees,
)
from financial_billing.core.domain.entities.fee_rule_entity import FeeRule
from financial_billing.core.domain.entities.financial_record_entity import FinancialRecordEntity
from financial_billing.core.domain.entities.installment_entity import InstallmentEntity
from financial_billing.core.domain.entities.payment_method import (
    DEFAULT_METHOD,
    INSTALLMENT_METHODS,
    parse_method,
)
from financial_billing.core.domain.services.fee_calculator import (
    FeeNet,
    compute_fee_net,
    resolve_fee_percent,
)

log = structlog.get_logger(__name__)

OVERDUE_LABEL = "Em atraso"
MONTH_LABELS = {
    1: "jan", 2: "fev", 3: "mar", 4: "abr", 5: "mai", 6: "jun",
    7: "jul", 8: "ago", 9: "set", 10: "out", 11: "nov", 12: "dez",
}


class FinancialAggregationService:
    """Funções puras sobre parcelas + registros + regras já carregados."""

    def __init__(self, rules: Iterable[FeeRule]):
        self.rules = list(rules)
        self._pct_cache: dict[tuple[str, int | None], Decimal] = {}

    # ───────────────────────── taxa ─────────────────────────
    def method_of(self, inst: InstallmentEntity, record: FinancialRecordEntity | None) -> str:
        method = inst.payment_method or (record.payment_method if record else None)
        parsed = parse_method(method)
        return (parsed or DEFAULT_METHOD).value

    def fee_of(self, inst: InstallmentEntity, record: FinancialRecordEntity | None) -> FeeNet:
        """
        Paga com snapshot → valores congelados. Pendente (ou paga antiga sem
        snapshot) → estimativa pela tabela atual.
        """
        if inst.is_paid and inst.has_fee_snapshot:
            return FeeNet(fee_amount=inst.fee_amount, net_amount=inst.net_amount)
        method = self.method_of(inst, record)
        count = record.total_installments if record and parse_method(method) in INSTALLMENT_METHODS else None
        key = (method, count)
        if key not in self._pct_cache:
            self._pct_cache[key] = resolve_fee_percent(method, count, self.rules)
        return compute_fee_net(inst.gross_amount, self._pct_cache[key])

    def _add(self, bucket: GrossNetBucket, inst: InstallmentEntity, record: FinancialRecordEntity | None) -> FeeNet:
        fee_net = self.fee_of(inst, record)
        bucket.add(inst.gross_amount, fee_net.fee_amount, fee_net.net_amount)
        return fee_net

    # ───────────────────────── mês ─────────────────────────
    def monthly_summary(
        self,
        month_year: str,
        installments: Sequence[InstallmentEntity],
        records: Mapping[str, FinancialRecordEntity],
        today: date,
    ) -> MonthlyFinancialSummary:
        first, last = month_bounds(month_year)
        paid = GrossNetBucket()
        pending = GrossNetBucket()
        overdue = GrossNetBucket()
        by_method: dict[str, MethodRevenue] = {}
        paid_records: set[str] = set()

        for inst in installments:
            record = records.get(inst.record_id)
            method = self.method_of(inst, record)
            if inst.is_paid:
                if inst.paid_date is None or not first <= inst.paid_date <= last:
                    continue
                self._add(paid, inst, record)
                self._add(by_method.setdefault(method, MethodRevenue()).paid, inst, record)
                paid_records.add(inst.record_id)
            elif inst.is_pending:
                if inst.is_overdue(today):
                    self._add(overdue, inst, record)
                elif inst.due_date is not None and first <= inst.due_date <= last:
                    self._add(pending, inst, record)
                    self._add(by_method.setdefault(method, MethodRevenue()).expected, inst, record)

        paid_r = paid.rounded()
        count = len(paid_records)
        return MonthlyFinancialSummary(
            month_year=month_year,
            paid=paid_r,
            pending=pending.rounded(),
            overdue=overdue.rounded(),
            by_method={
                m: MethodRevenue(paid=r.paid.rounded(), expected=r.expected.rounded())
                for m, r in by_method.items()
            },
            total_fees=TotalFees(
                fees=paid_r.fee,
                gross=paid_r.gross,
                pct=round2(percent_of(paid_r.fee, paid_r.gross)),
            ),
            average_ticket=AverageTicket(
                avg_gross=round2(paid.gross / count) if count else ZERO,
                avg_net=round2(paid.net / count) if count else ZERO,
                count=count,
            ),
        )

    # ───────────────────────── paciente ─────────────────────────
    def patient_summary(
        self,
        patient_id: str,
        installments: Sequence[InstallmentEntity],
        records: Mapping[str, FinancialRecordEntity],
        today: date,
    ) -> PatientFinancialSummary:
        overdue = GrossNetBucket()
        pending = GrossNetBucket()
        paid_total = ZERO
        last_paid: date | None = None

        for inst in installments:
            record = records.get(inst.record_id)
            if inst.is_paid:
                paid_total += inst.gross_amount
                if inst.paid_date and (last_paid is None or inst.paid_date > last_paid):
                    last_paid = inst.paid_date
            elif inst.is_pending:
                self._add(overdue if inst.is_overdue(today) else pending, inst, record)

        return PatientFinancialSummary(
            patient_id=patient_id,
            overdue=overdue.rounded(),
            pending=pending.rounded(),
            paid_total=round2(paid_total),
            overdue_installments_count=overdue.count,
            last_paid_at=last_paid,
        )

    def paid_in_month(
        self,
        month_year: str,
        installments: Sequence[InstallmentEntity],
        records: Mapping[str, FinancialRecordEntity],
    ) -> GrossNetBucket:
        first, last = month_bounds(month_year)
        bucket = GrossNetBucket()
        for inst in installments:
            if inst.is_paid and inst.paid_date is not None and first <= inst.paid_date <= last:
                self._add(bucket, inst, records.get(inst.record_id))
        return bucket.rounded()

    # ───────────────────────── recebíveis ─────────────────────────
    def future_receivables(
        self,
        installments: Sequence[InstallmentEntity],
        records: Mapping[str, FinancialRecordEntity],
        today: date,
        months: int = 6,
    ) -> list[ReceivableBucket]:
        """Balde "Em atraso" seguido de um balde por mês (a partir do atual)."""
        keys = [month_key(add_months(today.replace(day=1), i)) for i in range(months)]
        overdue = GrossNetBucket()
        per_month = {k: GrossNetBucket() for k in keys}

        for inst in installments:
            if not inst.is_pending or inst.due_date is None:
                continue
            record = records.get(inst.record_id)
            if inst.is_overdue(today):
                self._add(overdue, inst, record)
            elif (key := month_key(inst.due_date)) in per_month:
                self._add(per_month[key], inst, record)

        buckets = [_receivable(OVERDUE_LABEL, None, overdue)]
        for key in keys:
            year, month = key.split("-")
            buckets.append(_receivable(f"{MONTH_LABELS[int(month)]}/{year}", key, per_month[key]))
        return buckets


def _receivable(label: str, month_year: str | None, bucket: GrossNetBucket) -> ReceivableBucket:
    b = bucket.rounded()
    return ReceivableBucket(label=label, month_year=month_year, gross=b.gross, fees=b.fee, net=b.net)
