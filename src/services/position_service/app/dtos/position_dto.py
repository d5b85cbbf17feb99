# src/services/position_service/app/dtos/position_dto.py
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Position(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    security_code: str = Field(..., description="Instrument identifier.")
    quantity: int = Field(..., description="Signed net quantity: positive is long, negative is short.")
