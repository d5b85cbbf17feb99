# src/libs/position-common/position_common/processing_state_repository.py
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from .config import POSITION_STATE_KEY
from .database_models import ProcessingState
from .utils import timed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checkpoint:
    last_processed_transaction_id: int
    last_processed_timestamp: Optional[datetime] = None


class ProcessingStateRepository:
    """
    The checkpoint store. Holds a single row, keyed by `state_key`, recording
    how far delta recalculation has progressed through the ledger.
    """
    def __init__(self, db: Session, state_key: str = POSITION_STATE_KEY):
        self.db = db
        self.state_key = state_key

    def _find_row(self) -> Optional[ProcessingState]:
        stmt = select(ProcessingState).where(ProcessingState.state_key == self.state_key)
        return self.db.execute(stmt).scalar_one_or_none()

    @timed(repository="ProcessingStateRepository", method="read")
    def read(self) -> Optional[Checkpoint]:
        row = self._find_row()
        if row is None:
            return None
        return Checkpoint(
            last_processed_transaction_id=row.last_processed_transaction_id,
            last_processed_timestamp=row.last_processed_timestamp,
        )

    @timed(repository="ProcessingStateRepository", method="write")
    def write(self, checkpoint: Checkpoint) -> Checkpoint:
        row = self._find_row()
        if row is None:
            row = ProcessingState(state_key=self.state_key)
            self.db.add(row)
        row.last_processed_transaction_id = checkpoint.last_processed_transaction_id
        row.last_processed_timestamp = checkpoint.last_processed_timestamp
        self.db.flush()
        logger.debug(
            "Checkpoint written.",
            extra={
                "state_key": self.state_key,
                "last_processed_transaction_id": checkpoint.last_processed_transaction_id,
            },
        )
        return checkpoint

    @timed(repository="ProcessingStateRepository", method="delete_all")
    def delete_all(self) -> int:
        result = self.db.execute(delete(ProcessingState))
        return result.rowcount or 0
