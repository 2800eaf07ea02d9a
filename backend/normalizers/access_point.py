"""Normalizer for per-AP detail and stats payloads."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from services.metrics import DatasetType
from .base import (
    BaseNormalizer,
    DeviceFields,
    MetricGroup,
    NormalizeResult,
    NormalizedNeighbor,
    NormalizedPort,
    NormalizedSensor,
    RadioBand,
    MBPS,
    UTILIZATION_FIELDS,
    as_int,
    as_mapping,
    as_number,
    first_present,
)

logger = logging.getLogger(__name__)

# env_stat key -> (sensor class, description, unit)
ENVIRONMENT_READINGS = {
    "cpu_temp": ("temperature", "CPU Temperature", "C"),
    "ambient_temp": ("temperature", "Ambient Temperature", "C"),
    "attitude": ("angle", "Attitude", "deg"),
    "humidity": ("humidity", "Humidity", "%"),
    "pressure": ("pressure", "Pressure", "hPa"),
}

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def _if_index(name: str) -> Optional[int]:
    match = _TRAILING_DIGITS.search(name)
    return int(match.group(1)) if match else None


def _up_down(value: Any) -> Optional[str]:
    if value is None:
        return None
    return "up" if value else "down"


def _duplex(value: Any) -> Optional[str]:
    if value is None:
        return None
    return "fullDuplex" if value else "halfDuplex"


def _speed_bps(value: Any) -> Optional[int]:
    mbps = as_number(value)
    return None if mbps is None else int(mbps * MBPS)


class AccessPointNormalizer(BaseNormalizer):
    """Maps one AP's detail + stats payloads to typed field groups."""

    source_type: str = "cloud-ap"

    def normalize(
        self,
        detail: Optional[Mapping[str, Any]] = None,
        stats: Optional[Mapping[str, Any]] = None,
        **kwargs,
    ) -> NormalizeResult:
        """
        Normalize whichever payloads arrived.

        Args:
            detail: Device configuration payload, or None if the fetch failed
            stats: Device stats payload, or None if the fetch failed

        Returns:
            NormalizeResult; sections backed by a missing payload are empty
        """
        detail = as_mapping(detail)
        stats = as_mapping(stats)
        result = NormalizeResult()

        result.device = self.device_fields(detail, stats)
        result.radio_bands = self.parse_radio_bands(stats.get("radio_stat"))
        result.resource_groups = self.resource_groups(stats, result.radio_bands)
        result.ports = self.ports(detail, stats)
        result.sensors = self.environment_sensors(stats)
        result.wireless_sensors = self.wireless_sensors(stats, result.radio_bands)
        result.neighbors = self.neighbors(stats)

        if not detail and not stats:
            result.warnings.append("No payload available")
        return result

    def device_fields(self, detail: Mapping[str, Any], stats: Mapping[str, Any]) -> DeviceFields:
        fields = DeviceFields(
            hardware=first_present("model", detail, stats),
            version=first_present("version", stats, detail),
            serial=first_present("serial", detail, stats),
            uptime=as_int(first_present("uptime", stats, detail)),
            ip_address=first_present("ip", stats, detail),
        )
        if stats:
            fields.connected = str(stats.get("status", "")).lower() == "connected"
        return fields

    def resource_groups(
        self, stats: Mapping[str, Any], bands: List[RadioBand]
    ) -> List[MetricGroup]:
        groups = []

        processor = MetricGroup("cloud-processor", ("processor", "cloud", "0"))
        cpu_util = as_number(stats.get("cpu_util"))
        if cpu_util is None:
            idle = as_number(as_mapping(stats.get("cpu_stat")).get("idle"))
            if idle is not None:
                cpu_util = 100.0 - idle
        processor.add("usage", cpu_util, max=100)
        if processor:
            groups.append(processor)

        memory = self.memory_group(stats)
        if memory:
            groups.append(memory)

        environment = MetricGroup("cloud-environment", ("environment",))
        env = as_mapping(stats.get("env_stat"))
        for key in sorted(ENVIRONMENT_READINGS):
            environment.add(key, env.get(key), min=None)
        if environment:
            groups.append(environment)

        for band in bands:
            group = MetricGroup(
                "cloud-ap-radio",
                ("cloud-ap-radio", band.key),
                tags={"band": band.key, "label": band.label},
            )
            group.add("clients", band.num_clients)
            group.add("channel", band.channel)
            group.add("power", band.power, min=None)
            group.add("noise_floor", band.noise_floor, min=None)
            for util_field in UTILIZATION_FIELDS:
                group.add(util_field, band.utilization.get(util_field), max=100)
            group.add("tx_bytes", band.tx_bytes, DatasetType.ACCUMULATING_COUNTER)
            group.add("rx_bytes", band.rx_bytes, DatasetType.ACCUMULATING_COUNTER)
            if group:
                groups.append(group)

        return groups

    def memory_group(self, stats: Mapping[str, Any]) -> MetricGroup:
        """Memory total/used/free in bytes plus used percentage."""
        group = MetricGroup("cloud-mempool", ("mempool", "cloud", "0"))
        total_kb = as_number(stats.get("mem_total_kb"))
        used_kb = as_number(stats.get("mem_used_kb"))
        if total_kb is None or used_kb is None or total_kb <= 0:
            return group
        total = total_kb * 1024
        used = used_kb * 1024
        group.add("total", total)
        group.add("used", used)
        group.add("free", max(total - used, 0.0))
        group.add("percent", used / total * 100.0, max=100)
        return group

    def ports(self, detail: Mapping[str, Any], stats: Mapping[str, Any]) -> List[NormalizedPort]:
        """
        Merge interface config and counters by interface name.

        Sources (all optional): stats.port_stat keyed by name,
        detail.ethernet_interfaces list, stats.ethernet_port_stats keyed by
        interface index.
        """
        ports: Dict[str, NormalizedPort] = {}

        def port_for(name: str) -> NormalizedPort:
            if name not in ports:
                ports[name] = NormalizedPort(if_name=name, if_index=_if_index(name))
            return ports[name]

        interfaces = detail.get("ethernet_interfaces")
        if isinstance(interfaces, list):
            for eth in interfaces:
                if not isinstance(eth, Mapping):
                    continue
                index = as_int(eth.get("index"))
                name = eth.get("name") or (f"eth{index}" if index is not None else None)
                if not name:
                    continue
                port = port_for(str(name))
                if index is not None:
                    port.if_index = index
                port.if_descr = eth.get("description") or port.if_descr
                port.oper_status = _up_down(eth.get("up")) or port.oper_status
                speed = _speed_bps(eth.get("speed"))
                if speed is not None:
                    port.speed = speed
                port.duplex = _duplex(eth.get("full_duplex")) or port.duplex

        for name, stat in sorted(as_mapping(stats.get("port_stat")).items()):
            if not isinstance(stat, Mapping):
                continue
            port = port_for(str(name))
            self._apply_port_stats(port, stat)

        by_index = stats.get("ethernet_port_stats")
        if isinstance(by_index, list):
            by_index = dict(enumerate(by_index))
        for index, stat in as_mapping(by_index).items():
            if not isinstance(stat, Mapping):
                continue
            index = as_int(index)
            match = next((p for p in ports.values() if p.if_index == index), None)
            if match is not None:
                self._apply_port_stats(match, stat)

        for port in ports.values():
            if port.if_descr is None:
                port.if_descr = port.if_name
        return list(ports.values())

    def _apply_port_stats(self, port: NormalizedPort, stat: Mapping[str, Any]) -> None:
        if "up" in stat:
            port.oper_status = _up_down(stat.get("up"))
        speed = _speed_bps(stat.get("speed"))
        if speed is not None:
            port.speed = speed
        if "full_duplex" in stat:
            port.duplex = _duplex(stat.get("full_duplex"))
        counters = {
            "in_octets": stat.get("rx_bytes"),
            "out_octets": stat.get("tx_bytes"),
            "in_ucast_pkts": stat.get("rx_pkts", stat.get("rx_packets")),
            "out_ucast_pkts": stat.get("tx_pkts", stat.get("tx_packets")),
            "in_errors": stat.get("rx_errors"),
            "out_errors": stat.get("tx_errors"),
        }
        # A source without a counter leaves the one already merged
        for field, raw in counters.items():
            value = as_int(raw)
            if value is not None:
                setattr(port, field, value)

    def environment_sensors(self, stats: Mapping[str, Any]) -> List[NormalizedSensor]:
        sensors = []
        env = as_mapping(stats.get("env_stat"))
        for key in sorted(env):
            known = ENVIRONMENT_READINGS.get(key)
            if known is None and key.endswith("_temp"):
                known = ("temperature", key[: -len("_temp")].replace("_", " ").title() + " Temperature", "C")
            if known is None:
                continue
            value = as_number(env.get(key))
            if value is None:
                continue
            sensor_class, descr, unit = known
            sensors.append(
                NormalizedSensor(
                    sensor_class=sensor_class,
                    sensor_index=key,
                    sensor_descr=descr,
                    value=value,
                    unit=unit,
                )
            )
        return sensors

    def wireless_sensors(
        self, stats: Mapping[str, Any], bands: List[RadioBand]
    ) -> List[NormalizedSensor]:
        sensors = []
        total_clients = as_number(stats.get("num_clients"))
        if total_clients is not None:
            sensors.append(
                NormalizedSensor("clients", "total", "Total Clients", total_clients)
            )

        for band in bands:
            readings = (
                ("clients", band.num_clients, f"{band.label} Clients", None, None, None),
                ("utilization", band.util_all, f"{band.label} Utilization", "%", 0, 100),
                ("channel", band.channel, f"{band.label} Channel", None, None, None),
                ("power", band.power, f"{band.label} Tx Power", "dBm", None, None),
                ("noise-floor", band.noise_floor, f"{band.label} Noise Floor", "dBm", None, None),
            )
            for sensor_class, value, descr, unit, low, high in readings:
                if value is None:
                    continue
                sensors.append(
                    NormalizedSensor(
                        sensor_class=sensor_class,
                        sensor_index=band.key,
                        sensor_descr=descr,
                        value=float(value),
                        unit=unit,
                        limit_low=low,
                        limit=high,
                    )
                )
        return sensors

    def neighbors(self, stats: Mapping[str, Any]) -> List[NormalizedNeighbor]:
        per_port = as_mapping(stats.get("lldp_stats"))
        if not per_port and isinstance(stats.get("lldp_stat"), Mapping):
            per_port = {"eth0": stats["lldp_stat"]}

        neighbors = []
        for local_port, lldp in sorted(per_port.items()):
            if not isinstance(lldp, Mapping):
                continue
            if not (lldp.get("system_name") or lldp.get("chassis_id")):
                continue
            neighbors.append(
                NormalizedNeighbor(
                    local_port=str(local_port),
                    remote_hostname=lldp.get("system_name"),
                    remote_port=lldp.get("port_id"),
                    remote_port_descr=lldp.get("port_desc"),
                    remote_chassis_id=lldp.get("chassis_id"),
                    remote_mgmt_ip=lldp.get("mgmt_addr"),
                    remote_platform=lldp.get("system_desc"),
                )
            )
        return neighbors
