# src/services/position_service/app/dtos/transaction_dto.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from position_common.events import TransactionAction, TransactionSide


class TransactionRequest(BaseModel):
    """
    A submitted transaction. Omitting `transactionId` creates a new record
    with a generated id; supplying the id of a stored record edits it.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    transaction_id: Optional[int] = Field(
        default=None, ge=1, json_schema_extra={"example": 7},
        description="Existing transaction id to edit, or omit for a new transaction.",
    )
    trade_id: int = Field(..., ge=1, json_schema_extra={"example": 1})
    version: int = Field(..., ge=1, json_schema_extra={"example": 2})
    security_code: str = Field(..., min_length=1, json_schema_extra={"example": "REL"})
    quantity: int = Field(..., ge=0, json_schema_extra={"example": 60})
    action: TransactionAction = Field(..., json_schema_extra={"example": "UPDATE"})
    side: TransactionSide = Field(..., json_schema_extra={"example": "BUY"})


class TransactionRecord(BaseModel):
    """A stored transaction, flagged with whether it is the latest version of its trade."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    transaction_id: int
    trade_id: int
    version: int
    security_code: str
    quantity: int
    action: TransactionAction
    side: TransactionSide
    is_latest_version: bool = False
