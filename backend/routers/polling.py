"""
Discovery and polling trigger endpoints.

Provides manual discovery, full poll cycles, single-device polls, and
inventory statistics.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import get_db, get_session_factory
from dependencies import get_client_factory, get_discovery_guard, get_metric_sink
from models import (
    DeviceIdentity,
    MetricWrite,
    TenantConfig,
    SUB_RESOURCE_MODELS,
    VALID_ROLES,
)
from services.discovery import ClientFactory, DiscoveryGuard, run_discovery
from services.metrics import MetricSink
from services.orchestrator import poll_device_by_id, run_poll_cycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/polling", tags=["polling"])


def _poll_result_dict(result) -> dict:
    data = asdict(result)
    data["sync"] = result.sync_summary()
    return data


@router.post("/discover")
async def trigger_discovery(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """Run entity discovery for every enabled tenant now."""
    logger.info("Manual discovery triggered")
    try:
        results = await run_discovery(session_factory, client_factory)
        return {
            "success": True,
            "data": [asdict(r) for r in results],
            "message": f"Discovery completed for {len(results)} tenants",
        }
    except Exception as e:
        logger.error(f"Discovery failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/poll")
async def trigger_poll_cycle(
    discover: bool = Query(True, description="Run discovery before polling"),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    client_factory: ClientFactory = Depends(get_client_factory),
    sink: MetricSink = Depends(get_metric_sink),
    guard: Optional[DiscoveryGuard] = Depends(get_discovery_guard),
):
    """
    Run one full poll cycle now.

    With background polling on, discovery is skipped when the scheduler ran
    it within the current interval.
    """
    logger.info(f"Manual poll cycle triggered (discover={discover})")
    try:
        cycle = await run_poll_cycle(
            session_factory, sink, client_factory, guard=guard, discover=discover
        )
        return {
            "success": True,
            "data": {
                "cycle_id": cycle.cycle_id,
                "devices_polled": cycle.devices_polled,
                "devices_failed": cycle.devices_failed,
                "metrics_emitted": cycle.metrics_emitted,
                "duration_ms": round(cycle.duration_ms, 1),
                "discovery": [asdict(r) for r in cycle.discovery],
                "polls": [_poll_result_dict(p) for p in cycle.polls],
            },
            "message": f"Polled {cycle.devices_polled} devices",
        }
    except Exception as e:
        logger.error(f"Poll cycle failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/devices/{device_id}")
async def trigger_device_poll(
    device_id: int,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    client_factory: ClientFactory = Depends(get_client_factory),
    sink: MetricSink = Depends(get_metric_sink),
):
    """Poll a single device now."""
    try:
        result = await poll_device_by_id(session_factory, device_id, sink, client_factory)
        if result is None:
            raise HTTPException(status_code=404, detail="Device not found")
        return {
            "success": result.success,
            "data": _poll_result_dict(result),
            "message": (
                f"Device {result.hostname} not configured"
                if result.skipped
                else f"Polled {result.hostname}"
            ),
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Device poll failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats")
async def get_polling_stats(db: AsyncSession = Depends(get_db)):
    """Inventory counts: tenants, devices per role, sub-resources, metric writes."""
    logger.info("Fetching inventory statistics")

    tenant_total = (await db.execute(select(func.count(TenantConfig.id)))).scalar() or 0
    tenant_enabled = (
        await db.execute(
            select(func.count(TenantConfig.id)).where(TenantConfig.enabled.is_(True))
        )
    ).scalar() or 0

    devices = {}
    for role in VALID_ROLES:
        total = (
            await db.execute(
                select(func.count(DeviceIdentity.id)).where(DeviceIdentity.role == role)
            )
        ).scalar() or 0
        up = (
            await db.execute(
                select(func.count(DeviceIdentity.id)).where(
                    DeviceIdentity.role == role, DeviceIdentity.status.is_(True)
                )
            )
        ).scalar() or 0
        devices[role] = {"total": total, "up": up}

    sub_resources = {}
    for model in SUB_RESOURCE_MODELS:
        total = (await db.execute(select(func.count(model.id)))).scalar() or 0
        active = (
            await db.execute(select(func.count(model.id)).where(model.is_active.is_(True)))
        ).scalar() or 0
        sub_resources[model.__tablename__] = {"total": total, "active": active}

    metric_writes = (await db.execute(select(func.count(MetricWrite.id)))).scalar() or 0

    return {
        "counts": {
            "tenants": {"total": tenant_total, "enabled": tenant_enabled},
            "devices": devices,
            "sub_resources": sub_resources,
            "metric_writes": metric_writes,
        },
    }
