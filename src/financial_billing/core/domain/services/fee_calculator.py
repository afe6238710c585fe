"""
Resolução de taxa por forma de pagamento e cálculo de taxa/líquido.

Funções puras: a tabela de regras é carregada uma vez pelo chamador e
passada adiante, o que também serve de cache dentro de uma consulta.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

import structlog

from clinic_core.adapters.observability.metrics import FEE_COMPUTATIONS
from clinic_core.core.utils.money import HUNDRED, ZERO, round2, to_decimal
from financial_billing.core.domain.entities.fee_rule_entity import FeeRule
from financial_billing.core.domain.entities.payment_method import (
    FEE_FREE_METHODS,
    INSTALLMENT_METHODS,
    PaymentMethod,
    fee_lookup_method,
    parse_method,
)

log = structlog.get_logger(__name__)

MIN_CARD_INSTALLMENTS = 1
MAX_CARD_INSTALLMENTS = 12


@dataclass(frozen=True, slots=True)
class FeeNet:
    fee_amount: Decimal
    net_amount: Decimal


def installment_bucket(count: int | None) -> int:
    """Parcelas do crédito limitadas a [1, 12]; ausente → 1."""
    if count is None:
        return MIN_CARD_INSTALLMENTS
    return max(MIN_CARD_INSTALLMENTS, min(MAX_CARD_INSTALLMENTS, int(count)))


def resolve_fee_percent(
    method: str | PaymentMethod | None,
    installment_count: int | None,
    rules: Iterable[FeeRule],
) -> Decimal:
    parsed = parse_method(method)
    if parsed is None:
        return ZERO
    if parsed in FEE_FREE_METHODS:
        return ZERO

    lookup = fee_lookup_method(parsed)
    wanted = installment_bucket(installment_count) if parsed in INSTALLMENT_METHODS else None

    for rule in rules:
        if not rule.is_active or rule.payment_method != lookup.value:
            continue
        if rule.installments == wanted:
            return rule.fee_percent

    log.warning("fee_rule.missing", method=parsed.value, lookup=lookup.value, installments=wanted)
    return ZERO


def compute_fee_net(gross: Decimal | float | str, fee_percent: Decimal | float | str) -> FeeNet:
    """fee = round2(bruto*pct/100); líquido = round2(bruto - fee)."""
    gross_d = to_decimal(gross)
    fee = round2(gross_d * to_decimal(fee_percent) / HUNDRED)
    return FeeNet(fee_amount=fee, net_amount=round2(gross_d - fee))


def fee_for(
    gross: Decimal,
    method: str | PaymentMethod | None,
    installment_count: int | None,
    rules: Iterable[FeeRule],
) -> tuple[Decimal, FeeNet]:
    """Atalho: resolve o percentual e calcula taxa/líquido."""
    pct = resolve_fee_percent(method, installment_count, rules)
    parsed = parse_method(method)
    FEE_COMPUTATIONS.labels(parsed.value if parsed else "unknown").inc()
    return pct, compute_fee_net(gross, pct)
