"""
Health check service for Stratus.

Checks database connectivity, reports cloud integration state, and tracks
uptime.  Returns structured health responses with per-component status.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import async_sessionmaker

from config import settings
from database import AsyncSessionLocal
from models import TenantConfig

logger = logging.getLogger(__name__)

# Captured at module load, used to compute uptime
_start_time = time.monotonic()


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "degraded" | "error"
    message: Optional[str] = None
    response_time_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    uptime_seconds: float
    checks: list[ComponentHealth]
    timestamp: str


async def check_database(session_factory: async_sessionmaker) -> ComponentHealth:
    """Check database connectivity by running SELECT 1."""
    start = time.perf_counter()
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        elapsed = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="database",
            status="ok",
            response_time_ms=round(elapsed, 1),
        )
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="database",
            status="error",
            message=str(e),
            response_time_ms=round(elapsed, 1),
        )


async def check_cloud_integration(session_factory: async_sessionmaker) -> ComponentHealth:
    """Report whether the integration is enabled and has tenants to poll."""
    if not settings.CLOUD_ENABLED:
        return ComponentHealth(name="cloud", status="ok", message="disabled")
    try:
        async with session_factory() as session:
            count = await session.scalar(
                select(func.count(TenantConfig.id)).where(TenantConfig.enabled.is_(True))
            )
    except Exception as e:
        return ComponentHealth(name="cloud", status="error", message=str(e))
    if not count:
        return ComponentHealth(name="cloud", status="degraded", message="no enabled tenants")
    return ComponentHealth(name="cloud", status="ok", message=f"{count} enabled tenants")


async def run_health_checks(
    session_factory: Optional[async_sessionmaker] = None,
) -> HealthResponse:
    """Run all health checks and return aggregated status."""
    session_factory = session_factory or AsyncSessionLocal
    checks = [
        await check_database(session_factory),
        await check_cloud_integration(session_factory),
    ]

    # Database is critical; other failures only degrade
    critical_names = {"database"}
    has_critical_error = any(
        c.status == "error" and c.name in critical_names for c in checks
    )
    has_any_problem = any(c.status != "ok" for c in checks)

    if has_critical_error:
        overall = "unhealthy"
    elif has_any_problem:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        uptime_seconds=round(time.monotonic() - _start_time, 1),
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
