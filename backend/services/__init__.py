"""Services package for Stratus."""

from .errors import (
    StratusError,
    ConfigurationMissing,
    RemoteFetchFailure,
    ValidationFailure,
)
from .credentials import (
    Credentials,
    resolve_credentials,
    resolve_for_device,
    is_configured,
)
from .cloud_api import CloudApiClient, validate_connection
from .metrics import (
    DatasetType,
    SeriesDescriptor,
    MetricEmitter,
    MetricSink,
    MemoryMetricSink,
    DatabaseMetricSink,
)
from .sync import (
    synchronize,
    active_sub_resources,
    purge_sub_resources,
    SyncResult,
)

__all__ = [
    "StratusError",
    "ConfigurationMissing",
    "RemoteFetchFailure",
    "ValidationFailure",
    "Credentials",
    "resolve_credentials",
    "resolve_for_device",
    "is_configured",
    "CloudApiClient",
    "validate_connection",
    "DatasetType",
    "SeriesDescriptor",
    "MetricEmitter",
    "MetricSink",
    "MemoryMetricSink",
    "DatabaseMetricSink",
    "synchronize",
    "active_sub_resources",
    "purge_sub_resources",
    "SyncResult",
]
