# src/services/position_service/app/services/position_calculation_service.py
import logging
import threading
from collections import Counter
from concurrent.futures import Future
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from position_common.config import POSITION_STATE_KEY
from position_common.database_models import Transaction
from position_common.db import SessionLocal
from position_common.events import TransactionAction, TransactionSide
from position_common.exceptions import StorageFailure, TransactionValidationError
from position_common.monitoring import TRANSACTION_EDITS_REJECTED_TOTAL, TRANSACTIONS_INGESTED_TOTAL
from position_common.position_repository import PositionRepository
from position_common.processing_state_repository import ProcessingStateRepository
from position_common.transaction_repository import TransactionRepository

from ..core.edit_validator import EditRejected, EditValidator
from ..core.recalculation_engine import RecalculationEngine
from ..core.trade_resolver import group_by_trade, latest_version
from ..dtos.position_dto import Position
from ..dtos.processing_state_dto import ProcessingStateResponse
from ..dtos.transaction_dto import TransactionRecord, TransactionRequest
from .batch_worker import BatchWorker

logger = logging.getLogger(__name__)

# Position and checkpoint mutation is a read-modify-write over the whole
# ledger; every write path in the process holds this lock.
_WRITER_LOCK = threading.Lock()

SAMPLE_TRANSACTIONS = [
    TransactionRequest(trade_id=1, version=1, security_code="REL", quantity=50, action=TransactionAction.INSERT, side=TransactionSide.BUY),
    TransactionRequest(trade_id=2, version=1, security_code="ITC", quantity=40, action=TransactionAction.INSERT, side=TransactionSide.SELL),
    TransactionRequest(trade_id=3, version=1, security_code="INF", quantity=70, action=TransactionAction.INSERT, side=TransactionSide.BUY),
    TransactionRequest(trade_id=1, version=2, security_code="REL", quantity=60, action=TransactionAction.UPDATE, side=TransactionSide.BUY),
    TransactionRequest(trade_id=2, version=2, security_code="ITC", quantity=30, action=TransactionAction.CANCEL, side=TransactionSide.BUY),
    TransactionRequest(trade_id=4, version=1, security_code="INF", quantity=20, action=TransactionAction.INSERT, side=TransactionSide.SELL),
]


def _to_row(transaction: TransactionRequest, transaction_id: int) -> Transaction:
    return Transaction(
        transaction_id=transaction_id,
        trade_id=transaction.trade_id,
        version=transaction.version,
        security_code=transaction.security_code,
        quantity=transaction.quantity,
        action=transaction.action.value,
        side=transaction.side.value,
    )


class PositionCalculationService:
    """
    Entry point for every operation on transactions and positions.

    Each write runs under the process-wide writer lock and inside a single
    database transaction, so ledger rows, positions and the checkpoint commit
    together or not at all. Reads take no lock and may observe a snapshot
    that a concurrent writer is about to replace.
    """
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_worker: Optional[BatchWorker] = None,
    ):
        self._session_factory = session_factory
        self._batch_worker = batch_worker

    @contextmanager
    def _read_session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            logger.error("Position store read failed.", exc_info=True)
            raise StorageFailure(f"Position store read failed: {exc}") from exc
        finally:
            session.close()

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        with _WRITER_LOCK:
            session = self._session_factory()
            try:
                with session.begin():
                    yield session
            except SQLAlchemyError as exc:
                logger.error("Position store write failed; transaction rolled back.", exc_info=True)
                raise StorageFailure(f"Position store write failed: {exc}") from exc
            finally:
                session.close()

    @staticmethod
    def _engine(db: Session) -> RecalculationEngine:
        return RecalculationEngine(
            TransactionRepository(db),
            PositionRepository(db),
            ProcessingStateRepository(db, POSITION_STATE_KEY),
        )

    @staticmethod
    def _to_positions(rows) -> List[Position]:
        return [Position.model_validate(row) for row in rows]

    def process_transaction(self, transaction: TransactionRequest) -> List[Position]:
        """
        Stores one transaction, either as a new record or as an in-place edit
        of the latest version of its trade, and returns the updated positions.
        """
        logger.info(
            "Processing transaction.",
            extra={
                "transaction_id": transaction.transaction_id,
                "trade_id": transaction.trade_id,
                "security_code": transaction.security_code,
                "quantity": transaction.quantity,
            },
        )
        with self._unit_of_work() as db:
            repo = TransactionRepository(db)
            engine = self._engine(db)

            result = EditValidator(repo).validate(transaction)
            if isinstance(result, EditRejected):
                TRANSACTION_EDITS_REJECTED_TOTAL.inc()
                logger.warning(
                    "Rejected edit of a superseded transaction version.",
                    extra={
                        "transaction_id": result.transaction_id,
                        "trade_id": result.trade_id,
                        "attempted_version": result.attempted_version,
                        "latest_version": result.latest_version,
                    },
                )
                raise TransactionValidationError(
                    result.reason,
                    transaction_id=result.transaction_id,
                    trade_id=result.trade_id,
                    attempted_version=result.attempted_version,
                    latest_version=result.latest_version,
                )

            if result.is_edit:
                existing = repo.find_by_transaction_id(transaction.transaction_id)
                repo.update_in_place(
                    existing,
                    trade_id=transaction.trade_id,
                    version=transaction.version,
                    security_code=transaction.security_code,
                    quantity=transaction.quantity,
                    action=transaction.action.value,
                    side=transaction.side.value,
                )
                TRANSACTIONS_INGESTED_TOTAL.labels(path="single", kind="edit").inc()
                positions = engine.recalculate_securities(
                    {result.previous_security_code, transaction.security_code},
                    trade_ids={result.previous_trade_id, transaction.trade_id},
                )
            else:
                transaction_id = transaction.transaction_id
                if transaction_id is None:
                    transaction_id = (repo.find_max_transaction_id() or 0) + 1
                repo.insert(_to_row(transaction, transaction_id))
                TRANSACTIONS_INGESTED_TOTAL.labels(path="single", kind="insert").inc()
                positions = engine.recalculate_delta()

            return self._to_positions(positions)

    def process_bulk_transactions(self, transactions: List[TransactionRequest]) -> List[Position]:
        """
        Stores a batch of new transactions atomically, then runs one delta
        recalculation over everything the batch touched.
        """
        logger.info(f"Processing {len(transactions)} transactions in bulk.")
        with self._unit_of_work() as db:
            self._ingest_batch(db, transactions)
            return self._to_positions(self._engine(db).recalculate_delta())

    def submit_bulk_transactions(self, transactions: List[TransactionRequest]) -> Future:
        """Hands a batch to the batch worker; the future resolves to the positions."""
        if self._batch_worker is None:
            raise RuntimeError("No batch worker configured for this service.")
        return self._batch_worker.submit(self.process_bulk_transactions, transactions)

    def _ingest_batch(self, db: Session, transactions: List[TransactionRequest]) -> None:
        repo = TransactionRepository(db)

        supplied = [t.transaction_id for t in transactions if t.transaction_id is not None]
        repeated = sorted(tid for tid, count in Counter(supplied).items() if count > 1)
        if repeated:
            raise TransactionValidationError(
                f"Transaction ids {repeated} appear more than once in the batch.",
                transaction_id=repeated[0],
            )
        already_stored = sorted(repo.find_existing_transaction_ids(supplied))
        if already_stored:
            raise TransactionValidationError(
                f"Transaction ids {already_stored} already exist. "
                "Batches only accept new transactions; submit edits individually.",
                transaction_id=already_stored[0],
            )

        # Generated ids start above both the ledger and any id supplied in this batch.
        next_id = max([repo.find_max_transaction_id() or 0, *supplied]) + 1
        rows = []
        for transaction in transactions:
            transaction_id = transaction.transaction_id
            if transaction_id is None:
                transaction_id = next_id
                next_id += 1
            rows.append(_to_row(transaction, transaction_id))

        repo.insert_all(rows)
        TRANSACTIONS_INGESTED_TOTAL.labels(path="batch", kind="insert").inc(len(rows))

    def get_all_positions(self) -> List[Position]:
        with self._read_session() as db:
            return self._to_positions(PositionRepository(db).find_all())

    def get_all_transactions(self) -> List[TransactionRecord]:
        with self._read_session() as db:
            rows = TransactionRepository(db).find_all()
            latest_ids = {
                latest_version(versions).id for versions in group_by_trade(rows).values()
            }
            return [
                TransactionRecord.model_validate(row).model_copy(
                    update={"is_latest_version": row.id in latest_ids}
                )
                for row in rows
            ]

    def get_processing_state(self) -> ProcessingStateResponse:
        with self._read_session() as db:
            checkpoint = ProcessingStateRepository(db, POSITION_STATE_KEY).read()
        if checkpoint is None:
            return ProcessingStateResponse(
                state_key=POSITION_STATE_KEY,
                last_processed_transaction_id=0,
                last_processed_timestamp=datetime.now(timezone.utc),
            )
        return ProcessingStateResponse(
            state_key=POSITION_STATE_KEY,
            last_processed_transaction_id=checkpoint.last_processed_transaction_id,
            last_processed_timestamp=checkpoint.last_processed_timestamp,
        )

    def recalculate_delta(self) -> List[Position]:
        with self._unit_of_work() as db:
            return self._to_positions(self._engine(db).recalculate_delta())

    def force_full_recalculation(self) -> List[Position]:
        logger.info("Forcing full position recalculation.")
        with self._unit_of_work() as db:
            return self._to_positions(self._engine(db).recalculate_all())

    def clear_all_data(self) -> None:
        with self._unit_of_work() as db:
            self._clear(db)

    def _clear(self, db: Session) -> None:
        positions = PositionRepository(db).delete_all()
        transactions = TransactionRepository(db).delete_all()
        ProcessingStateRepository(db, POSITION_STATE_KEY).delete_all()
        logger.info(
            "Cleared all position data.",
            extra={"positions_deleted": positions, "transactions_deleted": transactions},
        )

    def load_sample_data(self) -> List[Position]:
        """Replaces all state with the six-transaction sample ledger."""
        with self._unit_of_work() as db:
            self._clear(db)
            self._ingest_batch(db, SAMPLE_TRANSACTIONS)
            return self._to_positions(self._engine(db).recalculate_delta())
