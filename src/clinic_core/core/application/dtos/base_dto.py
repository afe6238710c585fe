from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    BaseModel dos payloads do app:
    - aceita camelCase (cliente) ou snake_case (interno).
    - `model_dump(by_alias=True)` devolve camelCase.
    """
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }
