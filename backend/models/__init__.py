from .tenant_config import TenantConfig
from .device_identity import DeviceIdentity, ROLE_ORG, ROLE_AP, VALID_ROLES
from .port import Port
from .sensor import Sensor, WirelessSensor
from .neighbor_link import NeighborLink
from .access_point import AccessPoint
from .metric_write import MetricWrite

# Sub-resource tables, in the order they are shown and purged
SUB_RESOURCE_MODELS = (Port, Sensor, WirelessSensor, NeighborLink, AccessPoint)

__all__ = [
    "TenantConfig",
    "DeviceIdentity",
    "ROLE_ORG",
    "ROLE_AP",
    "VALID_ROLES",
    "Port",
    "Sensor",
    "WirelessSensor",
    "NeighborLink",
    "AccessPoint",
    "MetricWrite",
    "SUB_RESOURCE_MODELS",
]
