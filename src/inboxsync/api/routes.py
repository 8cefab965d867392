"""
Health routes for the Inbox Sync service.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from loguru import logger
from pydantic import BaseModel

from inboxsync.infrastructure import get_account_store, get_settings

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response with service status."""

    status: str
    timestamp: str
    services: dict[str, str]


# ============================================================================
# Health Endpoints
# ============================================================================


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check() -> HealthResponse:
    """Service name and version, no dependency checks."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
    )


@router.get("/health/ready", response_model=ReadinessResponse, tags=["health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check: the account store must answer a query."""
    services: dict[str, str] = {}

    try:
        get_account_store().list()
        services["account_store"] = "healthy"
    except Exception as e:
        logger.warning(f"Account store health check failed: {e}")
        services["account_store"] = f"error: {str(e)[:50]}"

    status = "ready" if services["account_store"] == "healthy" else "degraded"

    return ReadinessResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        services=services,
    )


@router.get("/health/live", tags=["health"])
async def liveness_check() -> dict[str, str]:
    """Liveness check: the process is up and serving."""
    return {"status": "alive"}
