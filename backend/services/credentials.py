"""
Credential resolution for cloud API access.

A device is reached through the tenant configuration that owns its
organization id.  Devices without an enabled tenant fall back to the legacy
per-device ``api_url`` / ``api_key`` attributes.  Nothing here performs I/O
other than reading tenant configuration.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import TenantConfig, DeviceIdentity
from .errors import ConfigurationMissing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Resolved endpoint and token for one tenant."""

    base_url: str
    token: str
    org_id: str
    source: str  # "tenant" | "device"


async def find_enabled_tenant(db: AsyncSession, org_id: str) -> Optional[TenantConfig]:
    if not org_id:
        return None
    result = await db.execute(
        select(TenantConfig).where(
            TenantConfig.org_id == org_id,
            TenantConfig.enabled.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def resolve_credentials(
    db: AsyncSession,
    org_id: str,
    attributes: Optional[Mapping[str, str]] = None,
) -> Credentials:
    """
    Resolve base URL and token for an org id.

    Resolution order:
    1. Enabled TenantConfig with this org id
    2. Legacy ``api_url`` / ``api_key`` attributes
    3. ConfigurationMissing

    Raises:
        ConfigurationMissing: when the integration is disabled or neither
            source yields a non-empty base URL and token.
    """
    if not settings.CLOUD_ENABLED:
        raise ConfigurationMissing("cloud integration disabled")

    org_id = (org_id or "").strip()
    tenant = await find_enabled_tenant(db, org_id)
    if tenant is not None:
        base_url = (tenant.api_url or "").strip().rstrip("/")
        token = (tenant.api_key or "").strip()
        if base_url and token:
            return Credentials(base_url=base_url, token=token, org_id=org_id, source="tenant")

    attributes = attributes or {}
    base_url = str(attributes.get("api_url") or "").strip().rstrip("/")
    token = str(attributes.get("api_key") or "").strip()
    if base_url and token:
        return Credentials(base_url=base_url, token=token, org_id=org_id, source="device")

    raise ConfigurationMissing(f"no credentials for org '{org_id or '-'}'")


async def resolve_for_device(db: AsyncSession, device: DeviceIdentity) -> Credentials:
    """Resolve credentials using the device's own attributes."""
    return await resolve_credentials(
        db, device.get_attrib("org_id"), device.attributes or {}
    )


async def is_configured(db: AsyncSession, device: DeviceIdentity) -> bool:
    try:
        await resolve_for_device(db, device)
    except ConfigurationMissing as e:
        logger.debug(f"Device {device.hostname}: not configured ({e})")
        return False
    return True
