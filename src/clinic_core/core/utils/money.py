from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from clinic_core.core.domain.events.exceptions import ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Converte números/strings do store em Decimal (None → 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Valor monetário inválido: {value!r}")
    try:
        # str() evita herdar o erro binário do float
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Valor monetário inválido: {value!r}") from exc


def round2(value: Any) -> Decimal:
    """Arredonda para centavos, half-up (como o financeiro da clínica)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(part: Any, whole: Any) -> Decimal:
    """`part / whole * 100`, ou 0 quando `whole` é zero."""
    whole_d = to_decimal(whole)
    if whole_d == ZERO:
        return ZERO
    return to_decimal(part) / whole_d * HUNDRED
