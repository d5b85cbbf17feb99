# src/libs/position-common/position_common/transaction_repository.py
import logging
from typing import Iterable, List, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session

from .database_models import Transaction
from .utils import timed

logger = logging.getLogger(__name__)


class TransactionRepository:
    """
    The ledger store. Transactions are inserted once and only ever edited in
    place through `update_in_place`; the store-assigned `id` never changes.
    """
    def __init__(self, db: Session):
        self.db = db

    @timed(repository="TransactionRepository", method="insert")
    def insert(self, transaction: Transaction) -> Transaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction

    @timed(repository="TransactionRepository", method="insert_all")
    def insert_all(self, transactions: List[Transaction]) -> List[Transaction]:
        """
        Stages a batch in list order so store ids follow submission order.
        """
        self.db.add_all(transactions)
        self.db.flush()
        logger.info(f"Staged {len(transactions)} transactions for insertion.")
        return transactions

    @timed(repository="TransactionRepository", method="update_in_place")
    def update_in_place(self, existing: Transaction, **values) -> Transaction:
        """
        Overwrites the business fields of an existing row, keeping its
        store id and transaction id.
        """
        for field in ("trade_id", "version", "security_code", "quantity", "action", "side"):
            if field in values:
                setattr(existing, field, values[field])
        self.db.flush()
        return existing

    @timed(repository="TransactionRepository", method="find_by_transaction_id")
    def find_by_transaction_id(self, transaction_id: int) -> Optional[Transaction]:
        stmt = select(Transaction).where(Transaction.transaction_id == transaction_id)
        return self.db.execute(stmt).scalar_one_or_none()

    @timed(repository="TransactionRepository", method="exists_by_transaction_id")
    def exists_by_transaction_id(self, transaction_id: int) -> bool:
        stmt = select(func.count()).select_from(Transaction).where(
            Transaction.transaction_id == transaction_id
        )
        return self.db.execute(stmt).scalar_one() > 0

    @timed(repository="TransactionRepository", method="find_existing_transaction_ids")
    def find_existing_transaction_ids(self, transaction_ids: Iterable[int]) -> List[int]:
        ids = list(transaction_ids)
        if not ids:
            return []
        stmt = select(Transaction.transaction_id).where(Transaction.transaction_id.in_(ids))
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="find_by_trade_id")
    def find_by_trade_id(self, trade_id: int) -> List[Transaction]:
        """Returns every version of a trade, oldest version first."""
        stmt = (
            select(Transaction)
            .where(Transaction.trade_id == trade_id)
            .order_by(Transaction.version.asc(), Transaction.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="find_by_trade_ids")
    def find_by_trade_ids(self, trade_ids: Iterable[int]) -> List[Transaction]:
        ids = list(trade_ids)
        if not ids:
            return []
        stmt = (
            select(Transaction)
            .where(Transaction.trade_id.in_(ids))
            .order_by(Transaction.trade_id.asc(), Transaction.version.asc(), Transaction.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="find_max_id")
    def find_max_id(self) -> Optional[int]:
        """Highest store-assigned id, or None for an empty ledger."""
        return self.db.execute(select(func.max(Transaction.id))).scalar_one_or_none()

    @timed(repository="TransactionRepository", method="find_max_transaction_id")
    def find_max_transaction_id(self) -> Optional[int]:
        """Highest external transaction id, used to generate new ones."""
        return self.db.execute(select(func.max(Transaction.transaction_id))).scalar_one_or_none()

    @timed(repository="TransactionRepository", method="find_transactions_with_id_greater_than")
    def find_transactions_with_id_greater_than(self, last_id: int) -> List[Transaction]:
        stmt = select(Transaction).where(Transaction.id > last_id).order_by(Transaction.id.asc())
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="find_trade_ids_for_security_codes")
    def find_trade_ids_for_security_codes(self, security_codes: Iterable[str]) -> List[int]:
        """
        Distinct trades with at least one version on any of the given codes.
        Spans the whole history, not only the latest versions.
        """
        codes = list(security_codes)
        if not codes:
            return []
        stmt = (
            select(Transaction.trade_id)
            .where(Transaction.security_code.in_(codes))
            .distinct()
            .order_by(Transaction.trade_id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="find_security_codes_for_trade_ids")
    def find_security_codes_for_trade_ids(self, trade_ids: Iterable[int]) -> List[str]:
        """Distinct security codes carried by any version of the given trades."""
        ids = list(trade_ids)
        if not ids:
            return []
        stmt = (
            select(Transaction.security_code)
            .where(Transaction.trade_id.in_(ids))
            .distinct()
            .order_by(Transaction.security_code.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="find_all_ordered_by_trade_then_version")
    def find_all_ordered_by_trade_then_version(self) -> List[Transaction]:
        stmt = select(Transaction).order_by(
            Transaction.trade_id.asc(), Transaction.version.asc(), Transaction.id.asc()
        )
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="find_all")
    def find_all(self) -> List[Transaction]:
        stmt = select(Transaction).order_by(Transaction.id.asc())
        return list(self.db.execute(stmt).scalars().all())

    @timed(repository="TransactionRepository", method="delete_all")
    def delete_all(self) -> int:
        result = self.db.execute(delete(Transaction))
        return result.rowcount or 0
