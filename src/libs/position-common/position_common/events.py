# src/libs/position-common/position_common/events.py
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class TransactionAction(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    CANCEL = "CANCEL"


class TransactionSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TransactionEvent(BaseModel):
    """
    Immutable view of one stored transaction version, as consumed by the
    recalculation engine. Built from ORM rows via `model_validate`.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[int] = None
    transaction_id: int
    trade_id: int
    version: int = Field(..., ge=1)
    security_code: str
    quantity: int = Field(..., ge=0)
    action: TransactionAction
    side: TransactionSide
