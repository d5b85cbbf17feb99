# src/services/position_service/app/core/recalculation_engine.py
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from pydantic import ValidationError

from position_common.database_models import Position, Transaction
from position_common.events import TransactionEvent
from position_common.exceptions import DataIntegrityAnomaly
from position_common.monitoring import (
    RECALCULATIONS_TOTAL,
    TRADE_RESOLUTION_ANOMALIES_TOTAL,
    TRADES_RESOLVED_TOTAL,
    recalculation_timer,
)
from position_common.position_repository import PositionRepository
from position_common.processing_state_repository import Checkpoint, ProcessingStateRepository
from position_common.transaction_repository import TransactionRepository

from .position_models import PositionAccumulator
from .trade_resolver import group_by_trade, resolve_trade

logger = logging.getLogger(__name__)


class RecalculationEngine:
    """
    Derives per-security net positions from the transaction ledger.

    Three entry points share one resolution rule (see `resolve_trade`):

    * `recalculate_all` rebuilds every position from the whole ledger and
      re-synchronizes the checkpoint.
    * `recalculate_delta` folds in only the transactions stored after the
      checkpoint, fully re-deriving the securities they touch.
    * `recalculate_securities` re-derives an explicit set of securities after
      an in-place edit, leaving the checkpoint alone.

    For any ledger, running `recalculate_delta` after every batch leaves the
    position store identical to a single `recalculate_all`. The engine does
    not commit; the caller owns the database transaction so that position
    writes and the checkpoint land together.
    """
    def __init__(
        self,
        transaction_repo: TransactionRepository,
        position_repo: PositionRepository,
        state_repo: ProcessingStateRepository,
    ):
        self.transaction_repo = transaction_repo
        self.position_repo = position_repo
        self.state_repo = state_repo

    def last_processed_id(self) -> int:
        checkpoint = self.state_repo.read()
        return checkpoint.last_processed_transaction_id if checkpoint else 0

    def recalculate_all(self) -> List[Position]:
        with recalculation_timer("full"):
            transactions = self.transaction_repo.find_all_ordered_by_trade_then_version()
            accumulator = PositionAccumulator()
            self._fold(transactions, accumulator, mode="full")
            self._apply(accumulator)

            max_id = self.transaction_repo.find_max_id() or 0
            self._write_checkpoint(max_id)

        RECALCULATIONS_TOTAL.labels(mode="full").inc()
        positions = self.position_repo.find_all()
        logger.info(
            "Full recalculation complete.",
            extra={
                "transactions": len(transactions),
                "positions": len(positions),
                "last_processed_transaction_id": max_id,
            },
        )
        return positions

    def recalculate_delta(self) -> List[Position]:
        with recalculation_timer("delta"):
            last_id = self.last_processed_id()
            new_transactions = self.transaction_repo.find_transactions_with_id_greater_than(last_id)
            if not new_transactions:
                logger.debug("No transactions beyond the checkpoint.", extra={"last_processed_transaction_id": last_id})
                return self.position_repo.find_all()

            touched = {t.security_code for t in new_transactions}
            # A new version can move a trade off a security; its earlier
            # versions' securities must be re-derived as well.
            touched.update(
                self.transaction_repo.find_security_codes_for_trade_ids(
                    {t.trade_id for t in new_transactions}
                )
            )
            self._rederive(touched, mode="delta")

            new_last_id = max(last_id, max(t.id for t in new_transactions))
            self._write_checkpoint(new_last_id)

        RECALCULATIONS_TOTAL.labels(mode="delta").inc()
        logger.info(
            "Delta recalculation complete.",
            extra={
                "new_transactions": len(new_transactions),
                "touched_securities": sorted(touched),
                "last_processed_transaction_id": new_last_id,
            },
        )
        return self.position_repo.find_all()

    def recalculate_securities(
        self,
        security_codes: Iterable[str],
        trade_ids: Optional[Iterable[int]] = None,
    ) -> List[Position]:
        """
        Re-derives the given securities, plus every security carried by any
        version of `trade_ids`. The checkpoint is not advanced.
        """
        touched = {code for code in security_codes if code}
        if trade_ids:
            touched.update(
                self.transaction_repo.find_security_codes_for_trade_ids(
                    {t for t in trade_ids if t is not None}
                )
            )

        if touched:
            with recalculation_timer("scoped"):
                self._rederive(touched, mode="scoped")
            RECALCULATIONS_TOTAL.labels(mode="scoped").inc()
            logger.info("Scoped recalculation complete.", extra={"touched_securities": sorted(touched)})

        return self.position_repo.find_all()

    def _rederive(self, touched: Set[str], mode: str) -> None:
        accumulator = PositionAccumulator(
            {p.security_code: p.quantity for p in self.position_repo.find_all()}
        )
        accumulator.reset(touched)

        trade_ids = self.transaction_repo.find_trade_ids_for_security_codes(touched)
        transactions = self.transaction_repo.find_by_trade_ids(trade_ids)
        self._fold(transactions, accumulator, mode=mode, restrict_to=touched)
        self._apply(accumulator, scope=touched)

    def _fold(
        self,
        transactions: List[Transaction],
        accumulator: PositionAccumulator,
        mode: str,
        restrict_to: Optional[Set[str]] = None,
    ) -> None:
        """
        Resolves each trade and adds its impact to the accumulator. When
        `restrict_to` is given, impacts on other securities are dropped:
        those securities were not reset and already hold the contribution.
        """
        groups = group_by_trade(transactions)
        for trade_id, rows in groups.items():
            try:
                impact = resolve_trade([TransactionEvent.model_validate(row) for row in rows])
            except (DataIntegrityAnomaly, ValidationError) as exc:
                TRADE_RESOLUTION_ANOMALIES_TOTAL.labels(reason="unresolvable").inc()
                logger.error(
                    "Skipping unresolvable trade; treating its contribution as zero.",
                    extra={"trade_id": trade_id, "versions": len(rows), "error": str(exc)},
                )
                continue

            if restrict_to is not None and impact.security_code not in restrict_to:
                continue
            accumulator.add(impact.security_code, impact.quantity)

        TRADES_RESOLVED_TOTAL.labels(mode=mode).inc(len(groups))

    def _apply(self, accumulator: PositionAccumulator, scope: Optional[Set[str]] = None) -> None:
        """
        Writes the accumulator to the position store. Only codes in `scope`
        are written when given; otherwise every code is reconciled and stale
        rows are removed.
        """
        existing = {p.security_code: p.quantity for p in self.position_repo.find_all()}
        codes = scope if scope is not None else set(existing) | accumulator.codes()

        upserted = deleted = 0
        for code in sorted(codes):
            quantity = accumulator.quantity(code)
            if quantity == 0:
                if code in existing:
                    self.position_repo.delete_by_code(code)
                    deleted += 1
            elif existing.get(code) != quantity:
                self.position_repo.upsert(code, quantity)
                upserted += 1

        logger.debug("Position store reconciled.", extra={"upserted": upserted, "deleted": deleted})

    def _write_checkpoint(self, last_id: int) -> None:
        self.state_repo.write(
            Checkpoint(
                last_processed_transaction_id=last_id,
                last_processed_timestamp=datetime.now(timezone.utc),
            )
        )
