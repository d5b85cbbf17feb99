# src/libs/position-common/position_common/utils.py
import time
import functools
from typing import Callable, Any

from .monitoring import DB_OPERATION_LATENCY_SECONDS

def timed(repository: str, method: str) -> Callable:
    """
    A decorator that times a repository call and records the latency
    in the DB_OPERATION_LATENCY_SECONDS Prometheus histogram.

    Args:
        repository: The name of the repository class (e.g., 'TransactionRepository').
        method: The name of the method being timed (e.g., 'find_by_trade_id').
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start_time = time.monotonic()
            try:
                return func(*args, **kwargs)
            finally:
                duration = time.monotonic() - start_time
                DB_OPERATION_LATENCY_SECONDS.labels(
                    repository=repository,
                    method=method
                ).observe(duration)
        return wrapper
    return decorator
