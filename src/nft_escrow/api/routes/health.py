"""Health check endpoint.

Reports whether the database answers and which asset registry the process
is wired to. Used by container healthchecks and load balancers.
"""

from __future__ import annotations

from fastapi import APIRouter

from nft_escrow.infrastructure.database.engine import ping
from nft_escrow.infrastructure.registry import get_registry
from nft_escrow.logging_config import get_logger
from nft_escrow.schemas.trade import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


async def _database_status() -> str:
    try:
        await ping()
    except Exception as exc:
        logger.error("health.db_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


def _registry_status() -> str:
    try:
        registry = get_registry()
    except RuntimeError as exc:
        logger.error("health.registry_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return f"healthy ({type(registry).__name__})"


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check() -> HealthResponse:
    database = await _database_status()
    registry = _registry_status()
    healthy = database == "healthy" and registry.startswith("healthy")
    return HealthResponse(
        status="ok" if healthy else "degraded",
        database=database,
        registry=registry,
    )
