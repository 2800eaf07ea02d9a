"""
Entity discovery for cloud organizations.

Handles:
- Org-proxy identity upsert per enabled tenant
- Site enumeration with the tenant's site allow-list
- Access point identity create/update with multi-key matching

Discovery never removes identities; decommissioning is explicit.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models import TenantConfig, DeviceIdentity, ROLE_ORG, ROLE_AP
from .cloud_api import CloudApiClient
from .credentials import Credentials
from .errors import RemoteFetchFailure
from utils.audit import audit

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Credentials], CloudApiClient]


@dataclass
class DiscoveryResult:
    """Result of discovering one tenant."""

    tenant: str
    org_id: str
    org_created: bool = False
    sites_seen: int = 0
    sites_failed: int = 0
    aps_created: int = 0
    aps_updated: int = 0
    aps_skipped: int = 0
    ambiguous_matches: int = 0
    errors: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ApIdentity:
    """Identity facts derived from one remote AP entry."""

    fingerprint: str
    mac: str
    remote_id: str
    ip: Optional[str]
    display_name: str
    hostname: str

    @property
    def fingerprints(self) -> List[str]:
        return [value for value in (self.remote_id, self.mac) if value]


def mac_hostname(mac: str) -> str:
    return "cloud-ap-" + mac.replace(":", "-")


def derive_ap_identity(raw: Mapping[str, Any], site_name: str) -> Optional[ApIdentity]:
    """
    Derive fingerprint, display name and default hostname for an AP.

    Returns None when the entry has neither a remote id nor a MAC.
    """
    mac = str(raw.get("mac") or "").strip().lower()
    remote_id = str(raw.get("id") or "").strip()
    if not mac and not remote_id:
        return None

    name = str(raw.get("name") or "").strip()
    ip = str(raw.get("ip") or "").strip() or None
    suffix = (str(raw.get("serial") or "") or mac or remote_id)[-4:]

    return ApIdentity(
        fingerprint=remote_id or mac,
        mac=mac,
        remote_id=remote_id,
        ip=ip,
        display_name=name or f"{site_name}-{suffix}",
        hostname=name or ip or (mac_hostname(mac) if mac else f"cloud-ap-{remote_id}"),
    )


def _contradicts(device: DeviceIdentity, identity: ApIdentity) -> bool:
    """True if ``device`` is recorded as a different remote entity."""
    if device.fingerprint in identity.fingerprints:
        return False
    known_mac = device.get_attrib("mac").lower()
    known_id = device.get_attrib("device_id")
    if known_mac and identity.mac and known_mac != identity.mac:
        return True
    if known_id and identity.remote_id and known_id != identity.remote_id:
        return True
    return False


async def find_ap_device(
    db: AsyncSession, identity: ApIdentity
) -> Tuple[Optional[DeviceIdentity], int]:
    """
    Find an existing AP identity, trying candidate keys in priority order:
    fingerprint (remote id or MAC), hostname, IP, ``device_id`` attribute.

    A secondary-key hit that is recorded as another remote entity is
    skipped and counted as ambiguous.

    Returns:
        (matching device or None, number of ambiguous candidates skipped)
    """
    conditions = [
        DeviceIdentity.fingerprint.in_(identity.fingerprints),
        DeviceIdentity.hostname == identity.hostname,
    ]
    if identity.ip:
        conditions.append(DeviceIdentity.ip_address == identity.ip)
    if identity.remote_id:
        conditions.append(
            DeviceIdentity.attributes["device_id"].as_string() == identity.remote_id
        )

    result = await db.execute(
        select(DeviceIdentity)
        .where(DeviceIdentity.role == ROLE_AP, or_(*conditions))
        .order_by(DeviceIdentity.id)
    )
    candidates = result.scalars().all()
    # Prefer a record already holding the preferred fingerprint
    candidates = sorted(candidates, key=lambda d: d.fingerprint != identity.fingerprint)

    predicates = [
        ("fingerprint", lambda d: d.fingerprint in identity.fingerprints),
        ("hostname", lambda d: d.hostname == identity.hostname),
        ("ip", lambda d: bool(identity.ip) and d.ip_address == identity.ip),
        (
            "device_id",
            lambda d: bool(identity.remote_id)
            and d.get_attrib("device_id") == identity.remote_id,
        ),
    ]

    ambiguous = 0
    rejected = set()
    for key_name, predicate in predicates:
        for device in candidates:
            if device.id in rejected or not predicate(device):
                continue
            if key_name != "fingerprint" and _contradicts(device, identity):
                logger.warning(
                    f"AP {identity.fingerprint} matched device {device.hostname} by "
                    f"{key_name}, but that device is recorded as {device.fingerprint}; skipped"
                )
                rejected.add(device.id)
                ambiguous += 1
                continue
            if key_name != "fingerprint":
                logger.info(
                    f"AP {identity.fingerprint} matched device {device.hostname} by {key_name}"
                )
            return device, ambiguous
    return None, ambiguous


async def _hostname_taken(db: AsyncSession, hostname: str) -> bool:
    result = await db.execute(
        select(DeviceIdentity.id).where(DeviceIdentity.hostname == hostname)
    )
    return result.first() is not None


async def _free_hostname(db: AsyncSession, identity: ApIdentity) -> str:
    options = [identity.hostname]
    if identity.mac:
        options.append(mac_hostname(identity.mac))
    options.append(f"cloud-ap-{identity.fingerprint.replace(':', '-')}")
    for hostname in options:
        if not await _hostname_taken(db, hostname):
            return hostname
    raise ValueError(f"No free hostname for AP {identity.fingerprint}")


async def ensure_org_device(
    db: AsyncSession, tenant: TenantConfig
) -> Tuple[DeviceIdentity, bool]:
    """Create or refresh the org-proxy identity for a tenant."""
    result = await db.execute(
        select(DeviceIdentity).where(
            DeviceIdentity.role == ROLE_ORG,
            DeviceIdentity.fingerprint == tenant.org_id,
        )
    )
    device = result.scalar_one_or_none()
    created = device is None
    if created:
        device = DeviceIdentity(
            hostname=f"cloud-org-{tenant.org_id}",
            role=ROLE_ORG,
            fingerprint=tenant.org_id,
            status=True,
            status_reason="",
        )
        db.add(device)
        logger.info(f"Created org device for tenant {tenant.name}")

    device.display_name = f"{tenant.name} (Cloud Org)"
    device.set_attribs(org_id=tenant.org_id, tenant_name=tenant.name)
    device.last_seen = datetime.utcnow()
    await db.flush()
    return device, created


async def upsert_ap_device(
    db: AsyncSession,
    tenant: TenantConfig,
    site_id: str,
    site_name: str,
    identity: ApIdentity,
) -> Tuple[DeviceIdentity, bool, int]:
    """
    Create or update one AP identity.

    The hostname is only chosen at creation; later runs refresh the display
    name, IP and attributes and leave an operator-edited hostname alone.

    Returns:
        (device, created, ambiguous candidates skipped)
    """
    device, ambiguous = await find_ap_device(db, identity)
    created = device is None

    if created:
        device = DeviceIdentity(
            hostname=await _free_hostname(db, identity),
            role=ROLE_AP,
            fingerprint=identity.fingerprint,
            status=True,
            status_reason="",
        )
        db.add(device)
    elif device.fingerprint != identity.fingerprint:
        logger.info(
            f"Device {device.hostname}: fingerprint {device.fingerprint} -> {identity.fingerprint}"
        )
        device.fingerprint = identity.fingerprint

    device.display_name = identity.display_name
    if identity.ip:
        device.ip_address = identity.ip
    device.set_attribs(
        org_id=tenant.org_id,
        site_id=site_id,
        site_name=site_name,
        device_id=identity.remote_id,
        mac=identity.mac,
    )
    device.last_seen = datetime.utcnow()
    await db.flush()

    if created:
        logger.info(f"Created AP device {device.display_name} ({identity.fingerprint})")
    return device, created, ambiguous


def filter_sites(sites: Any, allow_list: List[str]) -> List[Mapping[str, Any]]:
    """Keep sites with an id, restricted to ``allow_list`` when it is non-empty."""
    if not isinstance(sites, list):
        return []
    kept = [s for s in sites if isinstance(s, Mapping) and s.get("id")]
    if allow_list:
        kept = [s for s in kept if s["id"] in allow_list]
    return kept


async def discover_tenant(
    db: AsyncSession,
    tenant: TenantConfig,
    client: CloudApiClient,
) -> DiscoveryResult:
    """
    Discover one tenant: org-proxy upsert, then every AP of every kept site.

    A failed site list ends the tenant's AP discovery; a failed device list
    skips only that site.
    """
    result = DiscoveryResult(tenant=tenant.name, org_id=tenant.org_id)

    _, result.org_created = await ensure_org_device(db, tenant)
    await db.commit()

    try:
        sites = await client.get_sites(tenant.org_id)
    except RemoteFetchFailure as e:
        logger.warning(f"Discovery: failed fetching sites for org {tenant.name}: {e}")
        result.errors.append(str(e))
        return result

    for site in filter_sites(sites, tenant.site_id_list()):
        site_id = site["id"]
        site_name = site.get("name") or site_id
        result.sites_seen += 1

        try:
            devices = await client.get_site_devices(site_id)
        except RemoteFetchFailure as e:
            logger.debug(f"Discovery: failed fetching devices for site {site_id}: {e}")
            result.sites_failed += 1
            result.errors.append(str(e))
            continue

        for raw in devices if isinstance(devices, list) else []:
            if not isinstance(raw, Mapping) or raw.get("type") != "ap":
                continue
            identity = derive_ap_identity(raw, site_name)
            if identity is None:
                result.aps_skipped += 1
                continue
            try:
                _, created, ambiguous = await upsert_ap_device(
                    db, tenant, site_id, site_name, identity
                )
                await db.commit()
            except Exception as e:
                logger.error(
                    f"Discovery: failed recording AP {identity.fingerprint} in site {site_id}: {e}",
                    exc_info=True,
                )
                await db.rollback()
                result.aps_skipped += 1
                result.errors.append(str(e))
                continue
            result.ambiguous_matches += ambiguous
            if created:
                result.aps_created += 1
            else:
                result.aps_updated += 1

    logger.info(
        f"Discovery for {tenant.name}: {result.sites_seen} sites, "
        f"{result.aps_created} APs created, {result.aps_updated} updated, "
        f"{result.aps_skipped} skipped"
    )
    return result


class DiscoveryGuard:
    """
    Lets discovery run at most once per cycle and per interval.

    A claim is refused when its cycle id matches the last accepted one or,
    with ``min_interval`` set, when fewer than that many seconds passed since
    the last accepted claim.  The scheduler owns one guard sized to its poll
    interval; manual poll triggers share it, so a trigger right after a
    scheduled cycle polls without rediscovering.
    """

    def __init__(self, min_interval: float = 0.0, clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self._clock = clock
        self._last_cycle: Optional[Any] = None
        self._last_claimed_at: Optional[float] = None

    def claim(self, cycle_id: Any = None) -> bool:
        if cycle_id is not None and cycle_id == self._last_cycle:
            return False
        now = self._clock()
        if (
            self.min_interval > 0
            and self._last_claimed_at is not None
            and now - self._last_claimed_at < self.min_interval
        ):
            return False
        self._last_cycle = cycle_id
        self._last_claimed_at = now
        return True


async def run_discovery(
    session_factory: async_sessionmaker,
    client_factory: ClientFactory = CloudApiClient.from_credentials,
    guard: Optional[DiscoveryGuard] = None,
    cycle_id: Any = None,
) -> List[DiscoveryResult]:
    """
    Discover all enabled tenants.

    Tenants run concurrently (bounded by DISCOVERY_CONCURRENCY), each in its
    own session; one tenant's failure never affects another.
    """
    if not settings.CLOUD_ENABLED:
        logger.debug("Discovery skipped: cloud integration disabled")
        return []
    if guard is not None and not guard.claim(cycle_id):
        logger.debug(f"Discovery skipped for cycle {cycle_id}: already ran in this window")
        return []

    async with session_factory() as db:
        rows = await db.execute(
            select(TenantConfig).where(TenantConfig.enabled.is_(True)).order_by(TenantConfig.id)
        )
        tenants = rows.scalars().all()

    semaphore = asyncio.Semaphore(max(settings.DISCOVERY_CONCURRENCY, 1))

    async def _one(tenant: TenantConfig) -> DiscoveryResult:
        async with semaphore:
            credentials = Credentials(
                base_url=(tenant.api_url or "").rstrip("/"),
                token=tenant.api_key or "",
                org_id=tenant.org_id,
                source="tenant",
            )
            try:
                async with session_factory() as db:
                    async with client_factory(credentials) as client:
                        return await discover_tenant(db, tenant, client)
            except Exception as e:
                logger.error(f"Discovery error for org {tenant.name}: {e}", exc_info=True)
                return DiscoveryResult(tenant=tenant.name, org_id=tenant.org_id, errors=[str(e)])

    results = await asyncio.gather(*(_one(tenant) for tenant in tenants))
    for outcome in results:
        audit.log_discovery(
            org_id=outcome.org_id,
            status="success" if not outcome.errors else "partial",
            aps_created=outcome.aps_created,
            aps_updated=outcome.aps_updated,
            ambiguous_matches=outcome.ambiguous_matches,
        )
    return list(results)
