from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from clinic_core.core.domain.entities._base import EntityMixin
from clinic_core.core.domain.events.exceptions import ValidationError
from clinic_core.core.utils.money import ZERO, percent_of, to_decimal


@dataclass(slots=True)
class PlanItem(EntityMixin):
    """
    Procedimento de um plano (agenda ou registro financeiro).
    `cost_price`/`sale_price`/`name`/`category` são snapshots do catálogo;
    `final_price`, `quantity` e `discount` são editáveis.
    """
    catalog_id: str | None
    name: str
    final_price: Decimal
    quantity: int = 1
    discount: Decimal = ZERO
    cost_price: Decimal = ZERO
    sale_price: Decimal = ZERO
    category: str | None = None

    def __post_init__(self) -> None:
        self.final_price = to_decimal(self.final_price)
        self.discount = to_decimal(self.discount)
        self.cost_price = to_decimal(self.cost_price)
        self.sale_price = to_decimal(self.sale_price)
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool) or self.quantity < 1:
            raise ValidationError(f"Quantidade inválida para '{self.name}': {self.quantity!r}")
        if self.discount < ZERO:
            raise ValidationError(f"Desconto negativo para '{self.name}'")
        if self.final_price < ZERO:
            raise ValidationError(f"Preço final negativo para '{self.name}'")

    @property
    def line_total(self) -> Decimal:
        return self.final_price * self.quantity - self.discount

    @property
    def line_cost(self) -> Decimal:
        return self.cost_price * self.quantity


@dataclass(frozen=True, slots=True)
class PlanTotals:
    total_final: Decimal
    total_cost: Decimal
    total_profit: Decimal
    margin: Decimal = field(default=ZERO)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_final": self.total_final,
            "total_cost": self.total_cost,
            "total_profit": self.total_profit,
            "margin": self.margin,
        }


def calculate_item_profit(item: PlanItem) -> Decimal:
    """final*qtd - desconto - custo*qtd."""
    return item.line_total - item.line_cost


def calculate_plan_totals(items: Iterable[PlanItem]) -> PlanTotals:
    total_final = ZERO
    total_cost = ZERO
    for item in items:
        total_final += item.line_total
        total_cost += item.line_cost
    total_profit = total_final - total_cost
    return PlanTotals(
        total_final=total_final,
        total_cost=total_cost,
        total_profit=total_profit,
        margin=percent_of(total_profit, total_final),
    )
