"""Normalizer package for cloud telemetry.

Turns partially populated, schema-drifting JSON payloads into typed field
groups.  Every derived value is gated on its own input being present and
numeric; nothing missing is ever written as zero.
"""

from .base import (
    BaseNormalizer,
    DeviceFields,
    MetricGroup,
    NormalizeResult,
    NormalizedAccessPoint,
    NormalizedNeighbor,
    NormalizedPort,
    NormalizedSensor,
    RadioBand,
    as_number,
    sle_ratio,
)
from .access_point import AccessPointNormalizer
from .org import OrgNormalizer

__all__ = [
    "BaseNormalizer",
    "DeviceFields",
    "MetricGroup",
    "NormalizeResult",
    "NormalizedAccessPoint",
    "NormalizedNeighbor",
    "NormalizedPort",
    "NormalizedSensor",
    "RadioBand",
    "as_number",
    "sle_ratio",
    "AccessPointNormalizer",
    "OrgNormalizer",
]
