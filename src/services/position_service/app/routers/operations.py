# src/services/position_service/app/routers/operations.py
import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status

from ..dependencies import get_position_calculation_service
from ..dtos.position_dto import Position
from ..dtos.processing_state_dto import ProcessingStateResponse
from ..services.position_calculation_service import PositionCalculationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Operations"])


@router.get(
    "/processing-state",
    response_model=ProcessingStateResponse,
    summary="Get Recalculation Checkpoint",
)
def get_processing_state(
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    return service.get_processing_state()


@router.post(
    "/force-recalculation",
    response_model=List[Position],
    summary="Force a Full Recalculation",
    description=(
        "Rebuilds every position from the whole transaction ledger and re-synchronizes "
        "the checkpoint. Use for recovery or to verify delta results."
    ),
)
def force_full_recalculation(
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    logger.info("Forcing full recalculation via REST API.")
    return service.force_full_recalculation()


@router.post(
    "/load-sample-data",
    response_model=List[Position],
    summary="Load Sample Data",
    description="Clears all state and loads a small sample ledger of six transactions.",
)
def load_sample_data(
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    logger.info("Loading sample data via REST API.")
    return service.load_sample_data()


@router.delete(
    "/clear",
    status_code=status.HTTP_200_OK,
    summary="Clear All Data",
    description="Deletes every transaction, position and the checkpoint.",
)
def clear_all_data(
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    logger.info("Clearing all data via REST API.")
    service.clear_all_data()
    return Response(status_code=status.HTTP_200_OK)
