# src/services/position_service/app/services/batch_worker.py
import contextvars
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from position_common.config import BATCH_WORKER_THREADS

logger = logging.getLogger(__name__)


class BatchWorker:
    """
    Runs batch ingestion off the caller's thread and hands back a Future.

    The worker does not serialize writes; the service's writer lock does.
    The caller's context (correlation id, request id) is copied into the
    worker so its log lines stay traceable.
    """
    def __init__(self, max_workers: int = BATCH_WORKER_THREADS):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="position-batch"
        )
        logger.info(f"BatchWorker initialized with {max_workers} thread(s).")

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        context = contextvars.copy_context()
        return self._executor.submit(context.run, fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        logger.info("BatchWorker shutting down...")
        self._executor.shutdown(wait=wait)
