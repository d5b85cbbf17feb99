# src/libs/position-common/position_common/health.py
import logging
import asyncio
from typing import Callable, Awaitable

from fastapi import APIRouter, status, HTTPException
from sqlalchemy import text

from .db import SessionLocal

logger = logging.getLogger(__name__)

DependencyCheck = Callable[[], Awaitable[bool]]

def _ping_db() -> None:
    with SessionLocal() as session:
        session.execute(text("SELECT 1"))

async def check_db_health() -> bool:
    """Checks if a connection can be established with the database."""
    try:
        await asyncio.to_thread(_ping_db)
        return True
    except Exception as e:
        logger.error(f"Health Check: Database connection failed: {e}", exc_info=False)
        return False

def create_health_router(*dependencies: str) -> APIRouter:
    """
    Creates a standardized health check router.

    Args:
        *dependencies: Names of the dependencies ('db') to check for the
                       readiness probe.

    Returns:
        A FastAPI APIRouter with /health/live and /health/ready endpoints.
    """
    router = APIRouter(tags=["Health"])

    dep_map = {
        'db': ('database', check_db_health),
    }

    @router.get("/health/live", status_code=status.HTTP_200_OK)
    async def liveness_probe():
        return {"status": "alive"}

    @router.get("/health/ready", status_code=status.HTTP_200_OK)
    async def readiness_probe():
        checks = [dep for dep in dependencies if dep in dep_map]
        results = await asyncio.gather(*[dep_map[dep][1]() for dep in checks])

        dep_status = {
            dep_map[dep][0]: "ok" if results[i] else "unavailable"
            for i, dep in enumerate(checks)
        }

        if all(results):
            return {"status": "ready", "dependencies": dep_status}

        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "dependencies": dep_status},
        )

    return router
