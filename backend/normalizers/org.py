"""Normalizer for organization-level payloads (counts, SLE, AP inventory)."""

from typing import Any, Dict, List, Mapping, Optional

from .base import (
    BaseNormalizer,
    MetricGroup,
    NormalizedAccessPoint,
    as_int,
    as_mapping,
    as_number,
    sle_ratio,
)

# field name -> (payload, remote key)
ORG_COUNT_FIELDS = (
    ("aps", "summary", "num_aps"),
    ("aps_unassigned", "summary", "num_unassigned_aps"),
    ("switches", "summary", "num_switches"),
    ("switches_unassigned", "summary", "num_unassigned_switches"),
    ("gateways", "summary", "num_gateways"),
    ("gateways_unassigned", "summary", "num_unassigned_gateways"),
    ("mxedges", "summary", "num_mxedges"),
    ("sites", "stats", "num_sites"),
    ("devices", "stats", "num_devices"),
    ("inventory", "stats", "num_inventory"),
    ("devices_connected", "stats", "num_devices_connected"),
    ("devices_disconnected", "stats", "num_devices_disconnected"),
)


def sle_key(path: str) -> str:
    return path.strip().lower().replace(" ", "_").replace("-", "_")


class OrgNormalizer(BaseNormalizer):
    """Maps org summary/stats and site device stats to typed groups."""

    source_type: str = "cloud-org"

    def normalize(
        self,
        summary: Optional[Mapping[str, Any]] = None,
        stats: Optional[Mapping[str, Any]] = None,
        **kwargs,
    ) -> List[MetricGroup]:
        """Return the org count and SLE groups that have data."""
        groups = []
        counts = self.org_counts(summary, stats)
        if counts:
            groups.append(counts)
        sle = self.sle_group(stats)
        if sle:
            groups.append(sle)
        return groups

    def org_counts(
        self,
        summary: Optional[Mapping[str, Any]],
        stats: Optional[Mapping[str, Any]],
    ) -> MetricGroup:
        """
        Device/site counts.

        Each field comes from exactly one payload; fields whose payload is
        missing are left out rather than written as zero.
        """
        payloads = {"summary": as_mapping(summary), "stats": as_mapping(stats)}
        group = MetricGroup("cloud-org-devices", ("cloud-org-devices",))
        for name, source, key in ORG_COUNT_FIELDS:
            group.add(name, payloads[source].get(key))
        return group

    def sle_ratios(self, stats: Optional[Mapping[str, Any]]) -> Dict[str, float]:
        """SLE path -> percentage of ok user-minutes."""
        ratios: Dict[str, float] = {}
        entries = as_mapping(stats).get("sle")
        if not isinstance(entries, list):
            return ratios
        for entry in entries:
            if not isinstance(entry, Mapping) or not entry.get("path"):
                continue
            minutes = as_mapping(entry.get("user_minutes"))
            total = as_number(minutes.get("total"))
            ok = as_number(minutes.get("ok"))
            if total is None or ok is None:
                continue
            ratios[sle_key(str(entry["path"]))] = sle_ratio(ok, total)
        return ratios

    def sle_group(self, stats: Optional[Mapping[str, Any]]) -> MetricGroup:
        group = MetricGroup("cloud-org-sle", ("cloud-org-sle",))
        for path, ratio in self.sle_ratios(stats).items():
            group.add(path, ratio, max=100)
        return group

    def access_points(
        self, site: Mapping[str, Any], devices: Any
    ) -> List[NormalizedAccessPoint]:
        """AP inventory entries from one site's device stats list."""
        site_id = site.get("id")
        site_name = site.get("name") or site_id
        aps = []
        for raw in devices if isinstance(devices, list) else []:
            if not isinstance(raw, Mapping) or raw.get("type") != "ap":
                continue
            mac = str(raw.get("mac") or "").lower()
            if not mac:
                continue
            name = raw.get("name") or ""
            if not name:
                name = f"{site_name}-{(raw.get('serial') or mac)[-4:]}"
            aps.append(
                NormalizedAccessPoint(
                    mac_address=mac,
                    name=name,
                    model=raw.get("model") or "Cloud AP",
                    site_id=site_id,
                    site_name=site_name,
                    num_clients=as_int(raw.get("num_clients")),
                    bands=self.parse_radio_bands(raw.get("radio_stat")),
                )
            )
        return aps
