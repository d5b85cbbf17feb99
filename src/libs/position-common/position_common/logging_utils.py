# src/libs/position-common/position_common/logging_utils.py
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from pythonjsonlogger import jsonlogger

# Holds the correlation ID for each request or tool run. Defaults apply when
# nothing has set it explicitly (e.g. a background batch started at boot).
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="<not-set>")
request_id_var: ContextVar[str] = ContextVar("request_id", default="<not-set>")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="<not-set>")

class CorrelationIdFilter(logging.Filter):
    """
    A logging filter that injects the current correlation, request and trace
    IDs from their ContextVars into the log record.
    """
    def filter(self, record):
        record.correlation_id = correlation_id_var.get()
        record.request_id = request_id_var.get()
        record.trace_id = trace_id_var.get()
        record.service = os.getenv("SERVICE_NAME", "position-service")
        record.environment = os.getenv("ENVIRONMENT", "local")
        return True

def setup_logging(level: int = logging.INFO):
    """
    Configures the root logger for structured, correlation-ID-aware JSON
    logging. Every logger in the process (libraries included) inherits it.
    """
    root_logger = logging.getLogger()

    # Clear any existing handlers to prevent duplicate logs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s %(service)s %(environment)s %(correlation_id)s %(request_id)s %(trace_id)s",
        rename_fields={
            "asctime": "timestamp",
            "levelname": "level",
            "name": "logger"
        }
    )
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger.addHandler(handler)

def generate_correlation_id(prefix: str) -> str:
    """
    Generates a new correlation ID with a service-specific prefix.
    Args:
        prefix: A short code for the caller (e.g., 'POS').
    Returns:
        A formatted correlation ID string.
    """
    return f"{prefix}:{uuid.uuid4()}"
