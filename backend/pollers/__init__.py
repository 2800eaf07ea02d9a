"""Poller package for cloud-managed devices.

One poller per device role; each runs fetch -> normalize -> synchronize ->
emit for a single device.
"""

from .base import DevicePoller, PollResult
from .org import OrgPoller
from .access_point import AccessPointPoller
from models import ROLE_ORG, ROLE_AP

# Poller registry mapping device roles to poller classes
POLLERS = {
    ROLE_ORG: OrgPoller,
    ROLE_AP: AccessPointPoller,
}


def get_poller(role: str) -> DevicePoller:
    """Get a poller instance by device role.

    Raises:
        ValueError: If role is not registered
    """
    poller_class = POLLERS.get(role)
    if poller_class is None:
        raise ValueError(f"Unknown device role: {role}. Available: {', '.join(POLLERS.keys())}")
    return poller_class()


__all__ = [
    "DevicePoller",
    "PollResult",
    "OrgPoller",
    "AccessPointPoller",
    "POLLERS",
    "get_poller",
]
