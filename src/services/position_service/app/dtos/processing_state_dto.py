# src/services/position_service/app/dtos/processing_state_dto.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProcessingStateResponse(BaseModel):
    """
    How far delta recalculation has progressed through the ledger.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    state_key: str
    last_processed_transaction_id: int = Field(
        ..., description="Highest transaction store id already reflected in positions."
    )
    last_processed_timestamp: Optional[datetime] = Field(
        None, description="When the checkpoint last advanced. Advisory only."
    )
