# src/libs/position-common/position_common/database_models.py
from sqlalchemy import (
    Column, Integer, BigInteger,
    String, DateTime, func,
    UniqueConstraint, Index
)

from .db_base import Base

# Integer primary keys autoincrement on every backend, including SQLite.
IdType = BigInteger().with_variant(Integer, "sqlite")


class Transaction(Base):
    """
    One version of one trade. The store-assigned `id` orders ingestion and
    drives the checkpoint; `transaction_id` is the externally stable identifier.
    """
    __tablename__ = 'transactions'

    id = Column(IdType, primary_key=True, autoincrement=True)
    transaction_id = Column(BigInteger, unique=True, index=True, nullable=False)
    trade_id = Column(BigInteger, index=True, nullable=False)
    version = Column(Integer, nullable=False)
    security_code = Column(String, index=True, nullable=False)
    quantity = Column(Integer, nullable=False)
    action = Column(String, nullable=False)
    side = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_transactions_trade_version', 'trade_id', 'version'),
    )


class Position(Base):
    __tablename__ = 'positions'

    id = Column(IdType, primary_key=True, autoincrement=True)
    security_code = Column(String, unique=True, index=True, nullable=False)
    quantity = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())


class ProcessingState(Base):
    """
    Singleton checkpoint recording the highest transaction store id already
    folded into the positions table.
    """
    __tablename__ = 'processing_state'

    id = Column(IdType, primary_key=True, autoincrement=True)
    state_key = Column(String, nullable=False)
    last_processed_transaction_id = Column(BigInteger, nullable=False, default=0)
    last_processed_timestamp = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('state_key', name='_processing_state_key_uc'),
    )
