"""Poller for org-proxy devices: org counts, SLE and AP inventory."""

import logging
from datetime import datetime
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from models import AccessPoint, DeviceIdentity, ROLE_ORG
from normalizers import MetricGroup, NormalizedAccessPoint, OrgNormalizer
from services.cloud_api import CloudApiClient
from services.credentials import find_enabled_tenant
from services.discovery import filter_sites
from services.metrics import MetricEmitter
from services.sync import synchronize
from .base import DevicePoller, PollResult

logger = logging.getLogger(__name__)


def access_point_row(ap: NormalizedAccessPoint) -> AccessPoint:
    """Build an unsaved AccessPoint row from the AP's primary band."""
    band = ap.primary_band
    return AccessPoint(
        mac_address=ap.mac_address,
        name=ap.name,
        model=ap.model,
        site_id=ap.site_id,
        site_name=ap.site_name,
        radio_band=band.label if band else None,
        channel=band.channel if band else None,
        txpow=band.power if band else None,
        radioutil=int(band.util_all) if band and band.util_all is not None else None,
        num_clients=ap.num_clients,
        num_wlans=band.num_wlans if band else None,
    )


class OrgPoller(DevicePoller):
    """Polls one cloud organization through its org-proxy device."""

    role = ROLE_ORG
    sub_resource_models = (AccessPoint,)

    def __init__(self):
        self.normalizer = OrgNormalizer()

    async def poll(
        self,
        db: AsyncSession,
        device: DeviceIdentity,
        emitter: MetricEmitter,
        client: CloudApiClient,
    ) -> PollResult:
        result = PollResult(device_id=device.id, hostname=device.hostname, role=device.role)
        org_id = device.get_attrib("org_id") or device.fingerprint

        # Summary and stats degrade independently
        summary = await self.fetch(
            result, "devices summary", client.get_org_devices_summary, org_id
        )
        stats = await self.fetch(result, "org stats", client.get_org_stats, org_id)
        groups = list(self.normalizer.normalize(summary, stats))

        sites = await self.fetch(result, "sites", client.get_sites, org_id)
        if sites is not None:
            aps = await self.sync_access_points(db, device, client, result, sites)
            groups.extend(self.access_point_groups(aps))

        reachable = any(payload is not None for payload in (summary, stats, sites))
        device.status = reachable
        device.status_reason = "" if reachable else "api unreachable"
        result.status = reachable
        device.last_polled = datetime.utcnow()
        # Committed before emission: a sink may write through its own session
        await db.commit()

        for group in groups:
            if await self.emit_group(emitter, group):
                result.emitted += 1
        return result

    async def sync_access_points(
        self,
        db: AsyncSession,
        device: DeviceIdentity,
        client: CloudApiClient,
        result: PollResult,
        sites,
    ) -> List[NormalizedAccessPoint]:
        """
        Rebuild the org's AP inventory from per-site device stats.

        APs of a site whose stats could not be fetched keep their rows
        active; they were not observed missing.
        """
        tenant = await find_enabled_tenant(db, device.get_attrib("org_id"))
        allow_list = tenant.site_id_list() if tenant is not None else []

        aps: List[NormalizedAccessPoint] = []
        failed_sites = set()
        for site in filter_sites(sites, allow_list):
            devices = await self.fetch(
                result,
                f"device stats for site {site['id']}",
                client.get_site_device_stats,
                site["id"],
                level=logging.DEBUG,
            )
            if devices is None:
                failed_sites.add(site["id"])
                continue
            aps.extend(self.normalizer.access_points(site, devices))

        result.sync["access_points"] = await synchronize(
            db,
            AccessPoint,
            device.id,
            [access_point_row(ap) for ap in aps],
            keep=lambda row: row.site_id in failed_sites,
        )
        return aps

    def access_point_groups(self, aps: List[NormalizedAccessPoint]) -> List[MetricGroup]:
        """Org AP totals plus one series per AP, keyed by MAC."""
        totals = MetricGroup("cloud-org-aps", ("cloud-org-aps",))
        totals.add("aps", len({ap.mac_address for ap in aps}))
        client_counts = [ap.num_clients for ap in aps if ap.num_clients is not None]
        if client_counts:
            totals.add("clients", sum(client_counts))
        groups = [totals]

        for ap in aps:
            band = ap.primary_band
            group = MetricGroup(
                "cloud-org-ap",
                ("cloud-org-ap", ap.mac_address),
                tags={"name": ap.name, "site": ap.site_name},
            )
            group.add("clients", ap.num_clients)
            if band is not None:
                group.add("channel", band.channel)
                group.add("txpow", band.power, min=None)
                group.add("radioutil", band.util_all, max=100)
            groups.append(group)
        return groups
