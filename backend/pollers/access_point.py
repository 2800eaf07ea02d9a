"""Poller for access point devices."""

import logging
from datetime import datetime
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    DeviceIdentity,
    NeighborLink,
    Port,
    Sensor,
    WirelessSensor,
    ROLE_AP,
)
from normalizers import (
    AccessPointNormalizer,
    MetricGroup,
    NormalizeResult,
    NormalizedSensor,
)
from services.cloud_api import CloudApiClient
from services.metrics import DatasetType, MetricEmitter
from services.sync import synchronize
from .base import DevicePoller, PollResult

logger = logging.getLogger(__name__)

SENSOR_TYPE = "cloud"


def sensor_rows(model, sensors: List[NormalizedSensor]) -> list:
    return [
        model(
            sensor_class=s.sensor_class,
            sensor_type=SENSOR_TYPE,
            sensor_index=s.sensor_index,
            sensor_descr=s.sensor_descr,
            sensor_current=s.value,
            sensor_limit_low=s.limit_low,
            sensor_limit=s.limit,
            sensor_unit=s.unit,
            rrd_type=s.rrd_type.value,
        )
        for s in sensors
    ]


class AccessPointPoller(DevicePoller):
    """Polls one AP's detail and stats endpoints."""

    role = ROLE_AP
    sub_resource_models = (Port, Sensor, WirelessSensor, NeighborLink)

    def __init__(self):
        self.normalizer = AccessPointNormalizer()

    async def should_poll(self, db: AsyncSession, device: DeviceIdentity) -> bool:
        if not (device.get_attrib("site_id") and device.get_attrib("device_id")):
            logger.debug(f"Device {device.hostname}: missing site_id/device_id, not polled")
            return False
        return await super().should_poll(db, device)

    async def poll(
        self,
        db: AsyncSession,
        device: DeviceIdentity,
        emitter: MetricEmitter,
        client: CloudApiClient,
    ) -> PollResult:
        result = PollResult(device_id=device.id, hostname=device.hostname, role=device.role)
        site_id = device.get_attrib("site_id")
        remote_id = device.get_attrib("device_id")
        if not site_id or not remote_id:
            result.skipped = True
            result.errors.append("missing site_id/device_id attributes")
            return result

        detail = await self.fetch(result, "device detail", client.get_device, site_id, remote_id)
        stats = await self.fetch(result, "device stats", client.get_device_stats, site_id, remote_id)
        normalized = self.normalizer.normalize(detail, stats)

        self.apply_device_fields(device, normalized)
        result.status = device.status

        # Missing payloads yield empty collections, so stale rows go inactive
        result.sync["ports"] = await synchronize(
            db, Port, device.id, self.port_rows(normalized)
        )
        result.sync["sensors"] = await synchronize(
            db, Sensor, device.id, sensor_rows(Sensor, normalized.sensors)
        )
        result.sync["wireless_sensors"] = await synchronize(
            db, WirelessSensor, device.id, sensor_rows(WirelessSensor, normalized.wireless_sensors)
        )
        result.sync["neighbors"] = await synchronize(
            db, NeighborLink, device.id, self.neighbor_rows(normalized)
        )

        device.last_polled = datetime.utcnow()
        # Committed before emission: a sink may write through its own session
        await db.commit()

        result.emitted += await self.emit_metrics(emitter, device, normalized)
        return result

    def apply_device_fields(self, device: DeviceIdentity, normalized: NormalizeResult) -> None:
        """Last known value wins: only reported fields overwrite stored ones."""
        fields = normalized.device
        for name, value in fields.present().items():
            setattr(device, name, value)

        descr = " ".join(str(part) for part in (fields.hardware, fields.version) if part)
        if descr:
            device.sys_descr = descr

        if fields.connected is None:
            device.status = False
            device.status_reason = "stats unavailable"
        elif fields.connected:
            device.status = True
            device.status_reason = ""
        else:
            device.status = False
            device.status_reason = "disconnected"

    def port_rows(self, normalized: NormalizeResult) -> List[Port]:
        return [
            Port(
                if_name=p.if_name,
                if_index=p.if_index,
                if_descr=p.if_descr,
                if_type="ethernetCsmacd",
                oper_status=p.oper_status,
                admin_status="up" if p.oper_status else None,
                speed=p.speed,
                duplex=p.duplex,
                in_octets=p.in_octets,
                out_octets=p.out_octets,
                in_ucast_pkts=p.in_ucast_pkts,
                out_ucast_pkts=p.out_ucast_pkts,
                in_errors=p.in_errors,
                out_errors=p.out_errors,
            )
            for p in normalized.ports
        ]

    def neighbor_rows(self, normalized: NormalizeResult) -> List[NeighborLink]:
        return [
            NeighborLink(
                protocol=n.protocol,
                local_port=n.local_port,
                remote_hostname=n.remote_hostname,
                remote_port=n.remote_port,
                remote_port_descr=n.remote_port_descr,
                remote_chassis_id=n.remote_chassis_id,
                remote_mgmt_ip=n.remote_mgmt_ip,
                remote_platform=n.remote_platform,
            )
            for n in normalized.neighbors
        ]

    async def emit_metrics(
        self,
        emitter: MetricEmitter,
        device: DeviceIdentity,
        normalized: NormalizeResult,
    ) -> int:
        emitted = 0

        uptime = MetricGroup("uptime", ("uptime",))
        uptime.add("uptime", normalized.device.uptime)
        groups = [uptime] + list(normalized.resource_groups)

        for port in normalized.ports:
            group = MetricGroup(
                "port",
                ("port", port.if_name),
                tags={"ifName": port.if_name, "ifDescr": port.if_descr, "speed": port.speed},
            )
            group.add("INOCTETS", port.in_octets, DatasetType.COUNTER)
            group.add("OUTOCTETS", port.out_octets, DatasetType.COUNTER)
            group.add("INUCASTPKTS", port.in_ucast_pkts, DatasetType.COUNTER)
            group.add("OUTUCASTPKTS", port.out_ucast_pkts, DatasetType.COUNTER)
            group.add("INERRORS", port.in_errors, DatasetType.COUNTER)
            group.add("OUTERRORS", port.out_errors, DatasetType.COUNTER)
            groups.append(group)

        for measurement, sensors in (
            ("sensor", normalized.sensors),
            ("wireless-sensor", normalized.wireless_sensors),
        ):
            for sensor in sensors:
                group = MetricGroup(
                    measurement,
                    (measurement, sensor.sensor_class, SENSOR_TYPE, sensor.sensor_index),
                    tags={"descr": sensor.sensor_descr, "unit": sensor.unit},
                )
                group.add("sensor", sensor.value, sensor.rrd_type, min=None)
                groups.append(group)

        for group in groups:
            if await self.emit_group(emitter, group):
                emitted += 1
        return emitted
