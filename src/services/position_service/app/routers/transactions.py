# src/services/position_service/app/routers/transactions.py
import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from position_common.exceptions import TransactionValidationError

from ..dependencies import get_position_calculation_service
from ..dtos.position_dto import Position
from ..dtos.transaction_dto import TransactionRecord, TransactionRequest
from ..services.position_calculation_service import PositionCalculationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Transactions"])


def _validation_error(exc: TransactionValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "code": "TRANSACTION_EDIT_REJECTED",
            "message": str(exc),
            "transaction_id": exc.transaction_id,
            "trade_id": exc.trade_id,
            "attempted_version": exc.attempted_version,
            "latest_version": exc.latest_version,
        },
    )


@router.get(
    "/transactions",
    response_model=List[TransactionRecord],
    summary="Get All Transactions",
    description=(
        "Returns every stored transaction version in ingestion order, each flagged "
        "with whether it is the latest version of its trade."
    ),
)
def get_all_transactions(
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    return service.get_all_transactions()


@router.post(
    "/transaction",
    response_model=List[Position],
    responses={status.HTTP_409_CONFLICT: {"description": "Edit targets a superseded version."}},
    summary="Submit a Transaction",
    description=(
        "Inserts a new transaction, or edits the latest version of a trade in place when "
        "an existing transactionId is supplied. Returns the positions after recalculation."
    ),
)
def process_transaction(
    transaction: TransactionRequest,
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    try:
        return service.process_transaction(transaction)
    except TransactionValidationError as exc:
        raise _validation_error(exc) from exc


@router.post(
    "/transactions/bulk",
    response_model=List[Position],
    responses={status.HTTP_409_CONFLICT: {"description": "Batch contains existing or repeated ids."}},
    summary="Submit a Transaction Batch",
    description=(
        "Persists a batch of new transactions atomically on the batch worker, then runs a "
        "single delta recalculation. Returns the positions after recalculation."
    ),
)
async def process_bulk_transactions(
    transactions: List[TransactionRequest],
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    logger.info("Received transaction batch.", extra={"num_transactions": len(transactions)})
    future = service.submit_bulk_transactions(transactions)
    try:
        return await asyncio.wrap_future(future)
    except TransactionValidationError as exc:
        raise _validation_error(exc) from exc
