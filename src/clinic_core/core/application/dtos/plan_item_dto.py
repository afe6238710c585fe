from decimal import Decimal

from pydantic import Field

from clinic_core.core.application.dtos.base_dto import CamelModel
from clinic_core.core.domain.entities.plan_item_entity import PlanItem
from clinic_core.core.utils.money import ZERO


class PlanItemDTO(CamelModel):
    """Procedimento escolhido no agendamento ou no registro financeiro."""
    procedure_id: str | None = None          # id do procedure_catalog
    name: str
    final_price: Decimal = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    discount: Decimal = Field(default=ZERO, ge=0)
    cost_price: Decimal = ZERO
    sale_price: Decimal = ZERO
    category: str | None = None

    def to_plan_item(self) -> PlanItem:
        return PlanItem(
            catalog_id=self.procedure_id,
            name=self.name,
            final_price=self.final_price,
            quantity=self.quantity,
            discount=self.discount,
            cost_price=self.cost_price,
            sale_price=self.sale_price,
            category=self.category,
        )
