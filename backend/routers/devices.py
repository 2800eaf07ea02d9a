"""
API endpoints for discovered cloud devices.

Handles:
- Listing DeviceIdentity records by role and status
- Device detail with sub-resources (active only, or full history)
- Operator edits of hostname / display name
- Decommission (the only hard delete)
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import (
    AccessPoint,
    DeviceIdentity,
    MetricWrite,
    NeighborLink,
    Port,
    Sensor,
    WirelessSensor,
    VALID_ROLES,
)
from schemas import (
    AccessPointResponse,
    DeviceDetailResponse,
    DeviceIdentityResponse,
    DeviceIdentityUpdate,
    NeighborLinkResponse,
    PaginatedResponse,
    PortResponse,
    SensorResponse,
)
from services.orchestrator import decommission_device
from services.sync import active_sub_resources
from utils.audit import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


async def _get_device_or_404(db: AsyncSession, device_id: int) -> DeviceIdentity:
    device = await db.get(DeviceIdentity, device_id)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


async def _sub_resources(db: AsyncSession, model, device_id: int, include_inactive: bool):
    if not include_inactive:
        return await active_sub_resources(db, model, device_id)
    result = await db.execute(
        select(model).where(model.device_id == device_id).order_by(model.id)
    )
    return result.scalars().all()


@router.get("", response_model=PaginatedResponse)
async def list_devices(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    role: Optional[str] = Query(None, description="cloud-org or cloud-ap"),
    status: Optional[bool] = Query(None, description="Filter on up/down status"),
    db: AsyncSession = Depends(get_db),
):
    """List discovered devices with pagination."""
    try:
        if role is not None and role not in VALID_ROLES:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid role '{role}'. Allowed values: {', '.join(VALID_ROLES)}",
            )

        query = select(DeviceIdentity)
        count_query = select(func.count(DeviceIdentity.id))
        if role:
            query = query.where(DeviceIdentity.role == role)
            count_query = count_query.where(DeviceIdentity.role == role)
        if status is not None:
            query = query.where(DeviceIdentity.status.is_(status))
            count_query = count_query.where(DeviceIdentity.status.is_(status))

        total = (await db.execute(count_query)).scalar() or 0
        result = await db.execute(
            query.order_by(DeviceIdentity.hostname).offset(skip).limit(limit)
        )
        devices = result.scalars().all()

        return {
            "total": total,
            "skip": skip,
            "limit": limit,
            "items": [DeviceIdentityResponse.model_validate(d).model_dump() for d in devices],
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list devices: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{device_id}", response_model=Dict)
async def get_device(
    device_id: int,
    include_inactive: bool = Query(False, description="Include sub-resources no longer reported"),
    db: AsyncSession = Depends(get_db),
):
    """Get a device with its ports, sensors, neighbors and (for orgs) APs."""
    try:
        device = await _get_device_or_404(db, device_id)

        base = DeviceIdentityResponse.model_validate(device).model_dump()
        detail = DeviceDetailResponse(
            **base,
            ports=[
                PortResponse.model_validate(p)
                for p in await _sub_resources(db, Port, device.id, include_inactive)
            ],
            sensors=[
                SensorResponse.model_validate(s)
                for s in await _sub_resources(db, Sensor, device.id, include_inactive)
            ],
            wireless_sensors=[
                SensorResponse.model_validate(s)
                for s in await _sub_resources(db, WirelessSensor, device.id, include_inactive)
            ],
            neighbors=[
                NeighborLinkResponse.model_validate(n)
                for n in await _sub_resources(db, NeighborLink, device.id, include_inactive)
            ],
            access_points=[
                AccessPointResponse.model_validate(a)
                for a in await _sub_resources(db, AccessPoint, device.id, include_inactive)
            ],
        )
        return detail.model_dump()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get device: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{device_id}/metrics", response_model=Dict)
async def list_device_metrics(
    device_id: int,
    series: Optional[str] = Query(None, description="Series name, e.g. port-eth0"),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Most recent metric writes recorded for a device."""
    try:
        query = select(MetricWrite).where(MetricWrite.device_id == device_id)
        if series:
            query = query.where(MetricWrite.series_name == series)
        result = await db.execute(
            query.order_by(MetricWrite.id.desc()).limit(limit)
        )
        writes = result.scalars().all()

        return {
            "total": len(writes),
            "items": [
                {
                    "id": w.id,
                    "measurement": w.measurement,
                    "series_name": w.series_name,
                    "descriptor": w.descriptor,
                    "fields": w.fields,
                    "tags": w.tags,
                    "created_at": w.created_at.isoformat() if w.created_at else None,
                }
                for w in writes
            ],
        }
    except Exception as e:
        logger.error(f"Failed to list metrics for device {device_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.patch("/{device_id}", response_model=Dict)
async def update_device(
    device_id: int,
    data: DeviceIdentityUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Edit a device's hostname or display name.

    A hostname set here is kept by later discovery runs; the display name is
    refreshed from the remote side on the next discovery.
    """
    try:
        device = await _get_device_or_404(db, device_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        new_hostname = changes.get("hostname")
        if new_hostname and new_hostname != device.hostname:
            taken = await db.execute(
                select(DeviceIdentity.id).where(
                    DeviceIdentity.hostname == new_hostname,
                    DeviceIdentity.id != device.id,
                )
            )
            if taken.first() is not None:
                raise HTTPException(
                    status_code=409,
                    detail=f"Hostname {new_hostname} is already in use",
                )

        for field_name, value in changes.items():
            setattr(device, field_name, value)
        await db.commit()
        await db.refresh(device)

        logger.info(f"Updated device {device.id}: {sorted(changes)}")
        audit.log_device_identity_change(
            operation="UPDATE",
            device_id=str(device.id),
            device_name=device.hostname,
            changes=changes,
        )

        return {
            "success": True,
            "data": DeviceIdentityResponse.model_validate(device).model_dump(),
            "message": f"Device updated: {device.hostname}",
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update device: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{device_id}", response_model=Dict)
async def delete_device(device_id: int, db: AsyncSession = Depends(get_db)):
    """
    Decommission a device: hard-delete its sub-resources, then the device.

    A device that is still reported remotely is rediscovered on the next
    discovery run as a new identity.
    """
    try:
        device = await _get_device_or_404(db, device_id)
        hostname = device.hostname
        deleted = await decommission_device(db, device)

        audit.log_device_identity_change(
            operation="DELETE",
            device_id=str(device_id),
            device_name=hostname,
            changes={"sub_resources_deleted": deleted},
        )

        return {
            "success": True,
            "data": {"sub_resources_deleted": deleted},
            "message": f"Device decommissioned: {hostname}",
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to decommission device: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
