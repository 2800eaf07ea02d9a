"""Base classes and data structures for telemetry normalization."""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from services.metrics import DatasetType, SeriesDescriptor

MBPS = 1_000_000

# Utilization breakdowns reported per radio band, all percentages
UTILIZATION_FIELDS = (
    "util_all",
    "util_tx",
    "util_rx_in_bss",
    "util_rx_other_bss",
    "util_unknown_wifi",
    "util_non_wifi",
    "util_undecodable_wifi",
)

BAND_LABELS = {
    "band_24": "2.4 GHz",
    "band_5": "5 GHz",
    "band_6": "6 GHz",
}


def as_number(value: Any) -> Optional[float]:
    """Return ``value`` as a float if it is a usable number, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def as_int(value: Any) -> Optional[int]:
    number = as_number(value)
    return None if number is None else int(number)


def as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def first_present(key: str, *payloads: Mapping[str, Any]) -> Any:
    """Return the first non-empty ``key`` across payloads, in order."""
    for payload in payloads:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def sle_ratio(ok: float, total: float) -> float:
    """Percentage of ok user-minutes; 0 when there were no minutes at all."""
    if total == 0:
        return 0.0
    return ok / total * 100.0


def band_frequency(key: str) -> float:
    """band_24 -> 2.4, band_5 -> 5.0, unknown -> 0."""
    suffix = key[len("band_"):] if key.startswith("band_") else key
    if suffix == "24":
        return 2.4
    try:
        return float(suffix)
    except ValueError:
        return 0.0


@dataclass
class MetricGroup:
    """A set of numeric fields written together as one series."""

    measurement: str
    series_name: Tuple[str, ...]
    datasets: List[Tuple[str, DatasetType, Optional[float], Optional[float]]] = field(
        default_factory=list
    )
    values: Dict[str, float] = field(default_factory=dict)
    tags: Dict[str, Any] = field(default_factory=dict)

    def add(
        self,
        name: str,
        value: Any,
        type: DatasetType = DatasetType.GAUGE,
        min: Optional[float] = 0,
        max: Optional[float] = None,
    ) -> bool:
        """Add a field only if ``value`` is numeric. Returns True if added."""
        number = as_number(value)
        if number is None:
            return False
        self.datasets.append((name, type, min, max))
        self.values[name] = number
        return True

    def descriptor(self) -> SeriesDescriptor:
        descriptor = SeriesDescriptor.make()
        for name, type, min, max in self.datasets:
            descriptor.add_dataset(name, type, min, max)
        return descriptor

    def __bool__(self) -> bool:
        return bool(self.values)


@dataclass
class DeviceFields:
    """Device-level scalars; None means "not reported, keep what is stored"."""

    hardware: Optional[str] = None
    version: Optional[str] = None
    serial: Optional[str] = None
    uptime: Optional[int] = None
    ip_address: Optional[str] = None
    connected: Optional[bool] = None  # None = stats unavailable

    def present(self) -> Dict[str, Any]:
        return {
            name: value
            for name, value in self.__dict__.items()
            if value is not None and name != "connected"
        }


@dataclass
class RadioBand:
    """Telemetry for one radio band, discovered from the payload keys."""

    key: str
    label: str
    num_clients: Optional[int] = None
    channel: Optional[int] = None
    power: Optional[int] = None
    noise_floor: Optional[int] = None
    bandwidth: Optional[int] = None
    num_wlans: Optional[int] = None
    disabled: bool = False
    utilization: Dict[str, float] = field(default_factory=dict)
    tx_bytes: Optional[float] = None
    rx_bytes: Optional[float] = None

    @property
    def frequency(self) -> float:
        return band_frequency(self.key)

    @property
    def util_all(self) -> Optional[float]:
        return self.utilization.get("util_all")


@dataclass
class NormalizedPort:
    if_name: str
    if_index: Optional[int] = None
    if_descr: Optional[str] = None
    oper_status: Optional[str] = None
    speed: Optional[int] = None  # bits per second
    duplex: Optional[str] = None
    in_octets: Optional[int] = None
    out_octets: Optional[int] = None
    in_ucast_pkts: Optional[int] = None
    out_ucast_pkts: Optional[int] = None
    in_errors: Optional[int] = None
    out_errors: Optional[int] = None


@dataclass
class NormalizedSensor:
    sensor_class: str
    sensor_index: str
    sensor_descr: str
    value: float
    unit: Optional[str] = None
    limit_low: Optional[float] = None
    limit: Optional[float] = None
    rrd_type: DatasetType = DatasetType.GAUGE


@dataclass
class NormalizedNeighbor:
    local_port: str
    protocol: str = "lldp"
    remote_hostname: Optional[str] = None
    remote_port: Optional[str] = None
    remote_port_descr: Optional[str] = None
    remote_chassis_id: Optional[str] = None
    remote_mgmt_ip: Optional[str] = None
    remote_platform: Optional[str] = None


@dataclass
class NormalizedAccessPoint:
    mac_address: str
    name: str
    model: Optional[str] = None
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    num_clients: Optional[int] = None
    bands: List[RadioBand] = field(default_factory=list)

    @property
    def primary_band(self) -> Optional[RadioBand]:
        """Highest-frequency enabled band, if any."""
        enabled = [b for b in self.bands if not b.disabled] or self.bands
        if not enabled:
            return None
        return max(enabled, key=lambda b: b.frequency)


@dataclass
class NormalizeResult:
    """Result of normalizing one device's payloads."""

    device: DeviceFields = field(default_factory=DeviceFields)
    resource_groups: List[MetricGroup] = field(default_factory=list)
    radio_bands: List[RadioBand] = field(default_factory=list)
    ports: List[NormalizedPort] = field(default_factory=list)
    sensors: List[NormalizedSensor] = field(default_factory=list)
    wireless_sensors: List[NormalizedSensor] = field(default_factory=list)
    neighbors: List[NormalizedNeighbor] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    normalized_at: datetime = field(default_factory=datetime.utcnow)


class BaseNormalizer(ABC):
    """Abstract base class for all normalizers."""

    source_type: str = "unknown"

    @abstractmethod
    def normalize(self, *payloads: Any, **kwargs) -> Any:
        """Normalize raw payload(s) into typed results."""
        pass

    def parse_radio_bands(self, radio_stat: Any) -> List[RadioBand]:
        """
        Discover radio bands from whatever ``band_*`` keys are present.

        Every per-band field is optional and independently gated.
        """
        bands = []
        for key, raw in sorted(as_mapping(radio_stat).items()):
            if not key.startswith("band_") or not isinstance(raw, Mapping):
                continue
            band = RadioBand(
                key=key,
                label=BAND_LABELS.get(key, key),
                num_clients=as_int(raw.get("num_clients")),
                channel=as_int(raw.get("channel")),
                power=as_int(raw.get("power")),
                noise_floor=as_int(raw.get("noise_floor")),
                bandwidth=as_int(raw.get("bandwidth")),
                num_wlans=as_int(raw.get("num_wlans")),
                disabled=bool(raw.get("disabled", False)),
                tx_bytes=as_number(raw.get("tx_bytes")),
                rx_bytes=as_number(raw.get("rx_bytes")),
            )
            for util_field in UTILIZATION_FIELDS:
                value = as_number(raw.get(util_field))
                if value is not None:
                    band.utilization[util_field] = value
            bands.append(band)
        return bands
