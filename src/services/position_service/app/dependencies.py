# src/services/position_service/app/dependencies.py
from functools import lru_cache

from .services.batch_worker import BatchWorker
from .services.position_calculation_service import PositionCalculationService


@lru_cache(maxsize=1)
def get_batch_worker() -> BatchWorker:
    return BatchWorker()


@lru_cache(maxsize=1)
def get_position_calculation_service() -> PositionCalculationService:
    """Process-wide service instance shared by every router."""
    return PositionCalculationService(batch_worker=get_batch_worker())
