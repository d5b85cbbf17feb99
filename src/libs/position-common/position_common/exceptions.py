# src/libs/position-common/position_common/exceptions.py
from typing import Optional


class TransactionValidationError(Exception):
    """
    Raised when a submitted transaction cannot be accepted as-is, most often
    an edit aimed at a transaction that is no longer the latest version of
    its trade. Nothing has been written when this is raised; the caller must
    fix the input rather than retry.
    """
    def __init__(
        self,
        message: str,
        *,
        transaction_id: Optional[int] = None,
        trade_id: Optional[int] = None,
        attempted_version: Optional[int] = None,
        latest_version: Optional[int] = None,
    ):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.trade_id = trade_id
        self.attempted_version = attempted_version
        self.latest_version = latest_version


class DataIntegrityAnomaly(Exception):
    """
    Raised when a trade's versions cannot be resolved to an authoritative
    record. Recalculation treats the trade as contributing zero and carries on.
    """
    def __init__(self, message: str, trade_id: Optional[int] = None):
        super().__init__(message)
        self.trade_id = trade_id


class StorageFailure(RuntimeError):
    """
    Raised when the underlying store rejects a read or write during a
    recalculation. The surrounding database transaction has been rolled back,
    so the checkpoint has not moved. Callers may retry later.
    """
    pass
