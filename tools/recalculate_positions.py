# tools/recalculate_positions.py
import argparse
import logging
import os
import sys

# Ensure the script can find the position-common library and the service package
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
for path in (project_root, os.path.join(project_root, 'src', 'libs', 'position-common')):
    if path not in sys.path:
        sys.path.insert(0, path)

from position_common.logging_utils import setup_logging, correlation_id_var, generate_correlation_id  # noqa: E402
from src.services.position_service.app.services.position_calculation_service import (  # noqa: E402
    PositionCalculationService,
)

setup_logging()
logger = logging.getLogger(__name__)


def main(delta: bool) -> int:
    """
    Runs one recalculation against the configured database and logs the
    resulting positions.
    """
    correlation_id = generate_correlation_id("RECALC_TOOL")
    token = correlation_id_var.set(correlation_id)

    mode = "delta" if delta else "full"
    logger.info(f"Starting {mode} position recalculation.", extra={"correlation_id": correlation_id})

    service = PositionCalculationService()
    try:
        positions = service.recalculate_delta() if delta else service.force_full_recalculation()
        for position in positions:
            logger.info(
                "Position",
                extra={"security_code": position.security_code, "quantity": position.quantity},
            )
        state = service.get_processing_state()
        logger.info(
            f"Completed {mode} recalculation with {len(positions)} open position(s).",
            extra={"last_processed_transaction_id": state.last_processed_transaction_id},
        )
    finally:
        correlation_id_var.reset(token)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Recalculate equity positions from the transaction ledger."
    )
    parser.add_argument(
        "--delta",
        action="store_true",
        help="Only fold in transactions stored after the checkpoint instead of rebuilding everything.",
    )

    args = parser.parse_args()

    sys.exit(main(delta=args.delta))
