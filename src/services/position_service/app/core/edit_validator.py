# src/services/position_service/app/core/edit_validator.py
from dataclasses import dataclass
from typing import Optional, Union

from position_common.transaction_repository import TransactionRepository

from .trade_resolver import latest_version


@dataclass(frozen=True)
class EditAccepted:
    """
    The submission may be written. For an edit, carries what the stored
    record looked like before it is overwritten.
    """
    is_edit: bool
    previous_security_code: Optional[str] = None
    previous_trade_id: Optional[int] = None


@dataclass(frozen=True)
class EditRejected:
    reason: str
    transaction_id: int
    trade_id: int
    attempted_version: int
    latest_version: int


EditResult = Union[EditAccepted, EditRejected]


class EditValidator:
    """
    Gatekeeper for submitted transactions.

    A submission whose transaction id is absent or unknown is a new record.
    A known transaction id may only be overwritten while it is still the
    highest version of its trade; anything older is rejected. The check reads
    the ledger but never writes to it.
    """
    def __init__(self, transaction_repo: TransactionRepository):
        self.transaction_repo = transaction_repo

    def validate(self, incoming) -> EditResult:
        transaction_id = getattr(incoming, "transaction_id", None)
        if transaction_id is None:
            return EditAccepted(is_edit=False)

        existing = self.transaction_repo.find_by_transaction_id(transaction_id)
        if existing is None:
            return EditAccepted(is_edit=False)

        versions = self.transaction_repo.find_by_trade_id(existing.trade_id)
        latest = latest_version(versions)
        if latest.transaction_id != existing.transaction_id:
            reason = (
                f"Cannot edit transaction {existing.transaction_id} (version {existing.version}) "
                f"for trade {existing.trade_id}. Only the latest transaction version "
                f"{latest.version} can be edited."
            )
            return EditRejected(
                reason=reason,
                transaction_id=existing.transaction_id,
                trade_id=existing.trade_id,
                attempted_version=existing.version,
                latest_version=latest.version,
            )

        return EditAccepted(
            is_edit=True,
            previous_security_code=existing.security_code,
            previous_trade_id=existing.trade_id,
        )
