# src/libs/position-common/position_common/position_repository.py
import logging
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from .database_models import Position
from .utils import timed

logger = logging.getLogger(__name__)


class PositionRepository:
    """
    The position store: one row per security code with a nonzero net quantity.
    Whether an upsert inserts or updates is decided here, by key existence.
    """
    def __init__(self, db: Session):
        self.db = db

    @timed(repository="PositionRepository", method="find_all")
    def find_all(self) -> List[Position]:
        stmt = select(Position).order_by(Position.security_code.asc())
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="PositionRepository", method="find_by_code")
    def find_by_code(self, security_code: str) -> Optional[Position]:
        stmt = select(Position).where(Position.security_code == security_code)
        return self.db.execute(stmt).scalar_one_or_none()

    @timed(repository="PositionRepository", method="upsert")
    def upsert(self, security_code: str, quantity: int) -> Position:
        position = self.find_by_code(security_code)
        if position is None:
            position = Position(security_code=security_code, quantity=quantity)
            self.db.add(position)
        elif position.quantity != quantity:
            position.quantity = quantity
        self.db.flush()
        return position

    @timed(repository="PositionRepository", method="delete_by_code")
    def delete_by_code(self, security_code: str) -> int:
        result = self.db.execute(delete(Position).where(Position.security_code == security_code))
        deleted = result.rowcount or 0
        if deleted:
            logger.debug(f"Deleted flat position for '{security_code}'.")
        return deleted

    @timed(repository="PositionRepository", method="delete_all")
    def delete_all(self) -> int:
        result = self.db.execute(delete(Position))
        return result.rowcount or 0
