# src/services/position_service/app/core/trade_resolver.py
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, TypeVar

from position_common.events import TransactionAction, TransactionEvent, TransactionSide
from position_common.exceptions import DataIntegrityAnomaly
from position_common.monitoring import TRADE_RESOLUTION_ANOMALIES_TOTAL

from .position_models import TradeImpact

logger = logging.getLogger(__name__)

T = TypeVar("T")


def group_by_trade(transactions: Iterable[T]) -> Dict[int, List[T]]:
    """Groups transactions by trade id, preserving their incoming order."""
    groups: Dict[int, List[T]] = defaultdict(list)
    for transaction in transactions:
        groups[transaction.trade_id].append(transaction)
    return dict(groups)


def latest_version(transactions: Sequence[T]) -> T:
    """
    Returns the authoritative record of a trade: the highest version.
    Equal versions are broken by the highest store id.
    """
    if not transactions:
        raise DataIntegrityAnomaly("Cannot pick the latest version of an empty trade.")
    return max(transactions, key=lambda t: (t.version, t.id or 0))


def resolve_trade(transactions: Sequence[TransactionEvent]) -> TradeImpact:
    """
    Determines a trade's current contribution from all of its versions.

    A CANCEL on any version zeroes the whole trade; the zero is attributed to
    the security code of the latest version. Otherwise the latest version
    contributes +quantity for a BUY and -quantity for a SELL.
    """
    if not transactions:
        raise DataIntegrityAnomaly("Trade has no versions to resolve.")

    latest = latest_version(transactions)

    duplicates = sum(1 for t in transactions if t.version == latest.version)
    if duplicates > 1:
        TRADE_RESOLUTION_ANOMALIES_TOTAL.labels(reason="duplicate_latest_version").inc()
        logger.warning(
            "Trade has more than one record at its latest version; using the highest store id.",
            extra={
                "trade_id": latest.trade_id,
                "version": latest.version,
                "chosen_id": latest.id,
                "duplicates": duplicates,
            },
        )

    if any(t.action == TransactionAction.CANCEL for t in transactions):
        return TradeImpact(
            trade_id=latest.trade_id,
            security_code=latest.security_code,
            quantity=0,
            cancelled=True,
        )

    signed = latest.quantity if latest.side == TransactionSide.BUY else -latest.quantity
    return TradeImpact(trade_id=latest.trade_id, security_code=latest.security_code, quantity=signed)
