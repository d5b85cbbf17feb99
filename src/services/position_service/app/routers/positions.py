# src/services/position_service/app/routers/positions.py
from typing import List

from fastapi import APIRouter, Depends

from ..dependencies import get_position_calculation_service
from ..dtos.position_dto import Position
from ..services.position_calculation_service import PositionCalculationService

router = APIRouter(prefix="/api", tags=["Positions"])


@router.get(
    "/positions",
    response_model=List[Position],
    summary="Get Current Positions",
    description=(
        "Returns every security with a nonzero net position, ordered by security code. "
        "Reads are not serialized with writers and may lag a recalculation in flight."
    ),
)
def get_all_positions(
    service: PositionCalculationService = Depends(get_position_calculation_service),
):
    return service.get_all_positions()
