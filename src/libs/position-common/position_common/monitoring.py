# src/libs/position-common/position_common/monitoring.py
from prometheus_client import Counter, Histogram

# --------------------------------------------------------------------------------------
# DB metrics (used by position_common.utils.timed)
# --------------------------------------------------------------------------------------
DB_OPERATION_LATENCY_SECONDS = Histogram(
    "db_operation_latency_seconds",
    "Latency of database operations in seconds",
    labelnames=("repository", "method"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

# --------------------------------------------------------------------------------------
# Recalculation Engine Metrics
# --------------------------------------------------------------------------------------
RECALCULATIONS_TOTAL = Counter(
    "position_recalculations_total",
    "Number of completed position recalculations, by mode (delta, full, scoped).",
    labelnames=("mode",),
)

RECALCULATION_DURATION_SECONDS = Histogram(
    "position_recalculation_duration_seconds",
    "Wall-clock duration of a position recalculation, by mode.",
    labelnames=("mode",),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)

TRADES_RESOLVED_TOTAL = Counter(
    "position_trades_resolved_total",
    "Number of trades passed through the trade resolver, by mode.",
    labelnames=("mode",),
)

TRADE_RESOLUTION_ANOMALIES_TOTAL = Counter(
    "position_trade_resolution_anomalies_total",
    "Trades whose versions could not be resolved cleanly (empty group or duplicate latest version).",
    labelnames=("reason",),
)

TRANSACTION_EDITS_REJECTED_TOTAL = Counter(
    "transaction_edits_rejected_total",
    "Edits rejected because they did not target the latest version of a trade.",
)

TRANSACTIONS_INGESTED_TOTAL = Counter(
    "transactions_ingested_total",
    "Transactions written to the ledger, by path (single, batch) and kind (insert, edit).",
    labelnames=("path", "kind"),
)

def recalculation_timer(mode: str):
    """Context manager that observes recalculation duration for a mode."""
    return RECALCULATION_DURATION_SECONDS.labels(mode).time()

# --------------------------------------------------------------------------------------
# HTTP Metrics
# --------------------------------------------------------------------------------------
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "HTTP requests total",
    labelnames=("service", "method", "path", "status"),
)

HTTP_REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("service", "method", "path"),
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
