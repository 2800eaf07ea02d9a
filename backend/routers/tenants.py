"""
API endpoints for tenant configuration.

Handles:
- CRUD operations for TenantConfig records
- Optional connectivity/credential probe before a write
"""

import logging
from typing import Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from dependencies import get_validation_transport
from models import TenantConfig
from schemas import TenantCreate, TenantUpdate, TenantResponse
from services.cloud_api import validate_connection
from services.errors import ValidationFailure
from utils.audit import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


async def _get_tenant_or_404(db: AsyncSession, tenant_id: int) -> TenantConfig:
    tenant = await db.get(TenantConfig, tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


async def _ensure_org_id_free(
    db: AsyncSession, org_id: str, exclude_id: Optional[int] = None
) -> None:
    query = select(TenantConfig.id).where(TenantConfig.org_id == org_id)
    if exclude_id is not None:
        query = query.where(TenantConfig.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise HTTPException(
            status_code=409,
            detail=f"A tenant for organization {org_id} already exists",
        )


def _should_validate(validate: Optional[bool]) -> bool:
    return settings.VALIDATE_ON_SAVE if validate is None else validate


async def _probe(
    api_url: str,
    api_key: str,
    org_id: str,
    transport: Optional[httpx.AsyncBaseTransport],
) -> None:
    try:
        await validate_connection(api_url, api_key, org_id, transport=transport)
    except ValidationFailure as e:
        logger.warning(f"Tenant validation failed for org {org_id}: {e.reason}")
        raise HTTPException(status_code=400, detail=e.reason)


@router.get("", response_model=Dict)
async def list_tenants(
    enabled_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """List tenant configurations. API keys are masked."""
    try:
        query = select(TenantConfig)
        count_query = select(func.count(TenantConfig.id))
        if enabled_only:
            query = query.where(TenantConfig.enabled.is_(True))
            count_query = count_query.where(TenantConfig.enabled.is_(True))

        result = await db.execute(query.order_by(TenantConfig.name))
        tenants = result.scalars().all()
        total = (await db.execute(count_query)).scalar() or 0

        return {
            "total": total,
            "items": [TenantResponse.from_tenant(t).model_dump() for t in tenants],
        }
    except Exception as e:
        logger.error(f"Failed to list tenants: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{tenant_id}", response_model=Dict)
async def get_tenant(tenant_id: int, db: AsyncSession = Depends(get_db)):
    """Get a tenant configuration by ID."""
    try:
        tenant = await _get_tenant_or_404(db, tenant_id)
        return TenantResponse.from_tenant(tenant).model_dump()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get tenant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("", response_model=Dict, status_code=201)
async def create_tenant(
    data: TenantCreate,
    validate: Optional[bool] = Query(None, description="Probe the API before saving"),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_validation_transport),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a tenant configuration.

    With ``validate`` (default VALIDATE_ON_SAVE) the API URL, token and org
    id are probed first; a failed probe rejects the write with HTTP 400.
    """
    try:
        await _ensure_org_id_free(db, data.org_id)

        if _should_validate(validate):
            await _probe(data.api_url, data.api_key, data.org_id, transport)

        tenant = TenantConfig(
            name=data.name,
            api_url=data.api_url,
            api_key=data.api_key,
            org_id=data.org_id,
            site_ids=data.site_ids,
            enabled=data.enabled,
        )
        db.add(tenant)
        await db.commit()
        await db.refresh(tenant)

        logger.info(f"Created tenant {tenant.id}: {tenant.name} (org {tenant.org_id})")
        audit.log_tenant_change(operation="CREATE", tenant_id=str(tenant.id), org_id=tenant.org_id)

        return {
            "success": True,
            "data": TenantResponse.from_tenant(tenant).model_dump(),
            "message": f"Tenant created: {tenant.name}",
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to create tenant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{tenant_id}", response_model=Dict)
async def update_tenant(
    tenant_id: int,
    data: TenantUpdate,
    validate: Optional[bool] = Query(None, description="Probe the API before saving"),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_validation_transport),
    db: AsyncSession = Depends(get_db),
):
    """Update a tenant configuration. Omitted fields are left unchanged."""
    try:
        tenant = await _get_tenant_or_404(db, tenant_id)
        # Only site_ids may be cleared with an explicit null
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key == "site_ids"
        }

        if "org_id" in changes and changes["org_id"] != tenant.org_id:
            await _ensure_org_id_free(db, changes["org_id"], exclude_id=tenant.id)

        if _should_validate(validate):
            await _probe(
                changes.get("api_url", tenant.api_url),
                changes.get("api_key", tenant.api_key),
                changes.get("org_id", tenant.org_id),
                transport,
            )

        for field_name, value in changes.items():
            setattr(tenant, field_name, value)
        await db.commit()
        await db.refresh(tenant)

        logger.info(f"Updated tenant {tenant.id}: {sorted(changes)}")
        audit.log_tenant_change(
            operation="UPDATE",
            tenant_id=str(tenant.id),
            org_id=tenant.org_id,
            changed_fields=sorted(changes),
        )

        return {
            "success": True,
            "data": TenantResponse.from_tenant(tenant).model_dump(),
            "message": f"Tenant updated: {tenant.name}",
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update tenant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{tenant_id}", response_model=Dict)
async def delete_tenant(tenant_id: int, db: AsyncSession = Depends(get_db)):
    """
    Delete a tenant configuration.

    Discovered devices are kept; remove them through device decommission.
    """
    try:
        tenant = await _get_tenant_or_404(db, tenant_id)
        name, org_id = tenant.name, tenant.org_id
        await db.delete(tenant)
        await db.commit()

        logger.info(f"Deleted tenant {tenant_id}: {name}")
        audit.log_tenant_change(operation="DELETE", tenant_id=str(tenant_id), org_id=org_id)

        return {"success": True, "message": f"Tenant deleted: {name}"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete tenant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
