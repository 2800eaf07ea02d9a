"""
Time-series write construction and dispatch.

Each emission pairs a self-describing schema (SeriesDescriptor) with the
current values.  Descriptors are rebuilt on every poll from the fields that
are actually present, so optional fields may come and go; the storage side
owns any migration that implies.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from models import DeviceIdentity, MetricWrite as MetricWriteRow

logger = logging.getLogger(__name__)


class DatasetType(str, Enum):
    GAUGE = "gauge"  # instantaneous value
    COUNTER = "counter"  # monotonically increasing
    ACCUMULATING_COUNTER = "accumulating_counter"  # wraps / resets on reboot


@dataclass(frozen=True)
class Dataset:
    name: str
    type: DatasetType
    min: Optional[float] = 0
    max: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type.value, "min": self.min, "max": self.max}


class SeriesDescriptor:
    """Ordered set of datasets describing one series."""

    def __init__(self):
        self._datasets: Dict[str, Dataset] = {}

    @classmethod
    def make(cls) -> "SeriesDescriptor":
        return cls()

    def add_dataset(
        self,
        name: str,
        type: DatasetType = DatasetType.GAUGE,
        min: Optional[float] = 0,
        max: Optional[float] = None,
    ) -> "SeriesDescriptor":
        if name in self._datasets:
            raise ValueError(f"Dataset '{name}' already declared")
        self._datasets[name] = Dataset(name=name, type=DatasetType(type), min=min, max=max)
        return self

    @property
    def datasets(self) -> List[Dataset]:
        return list(self._datasets.values())

    @property
    def names(self) -> List[str]:
        return list(self._datasets)

    def __contains__(self, name: str) -> bool:
        return name in self._datasets

    def __len__(self) -> int:
        return len(self._datasets)

    def as_list(self) -> List[Dict[str, Any]]:
        return [ds.as_dict() for ds in self._datasets.values()]


@dataclass
class MetricWrite:
    """One write request for the time-series collaborator."""

    device_id: int
    hostname: str
    measurement: str
    series_name: Sequence[str]
    descriptor: SeriesDescriptor
    fields: Dict[str, float]
    tags: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def series_key(self) -> str:
        return "-".join(str(part) for part in self.series_name)


class MetricSink(ABC):
    """Receives fully formed writes. Append-only from the caller's view."""

    @abstractmethod
    async def put(self, write: MetricWrite) -> None:
        pass


class MemoryMetricSink(MetricSink):
    """Keeps writes in memory; used for tests and dry runs."""

    def __init__(self):
        self.writes: List[MetricWrite] = []

    async def put(self, write: MetricWrite) -> None:
        self.writes.append(write)

    def series(self, series_key: str) -> List[MetricWrite]:
        return [w for w in self.writes if w.series_key == series_key]

    def last(self, series_key: str) -> Optional[MetricWrite]:
        matches = self.series(series_key)
        return matches[-1] if matches else None


class DatabaseMetricSink(MetricSink):
    """Appends every write to ``metric_writes`` in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def put(self, write: MetricWrite) -> None:
        async with self.session_factory() as session:
            session.add(
                MetricWriteRow(
                    device_id=write.device_id,
                    hostname=write.hostname,
                    measurement=write.measurement,
                    series_name=write.series_key,
                    descriptor=write.descriptor.as_list(),
                    fields=write.fields,
                    tags=write.tags,
                    created_at=write.timestamp,
                )
            )
            await session.commit()


class MetricEmitter:
    """Builds writes for one device and hands them to a sink."""

    def __init__(self, sink: MetricSink, device: DeviceIdentity):
        self.sink = sink
        self.device = device
        self.emitted = 0

    async def emit(
        self,
        measurement: str,
        series_name: Sequence[str],
        descriptor: SeriesDescriptor,
        fields: Dict[str, Any],
        tags: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Dispatch one write.

        ``None`` values are dropped together with their dataset; a write with
        nothing left is skipped.  Returns True when a write was dispatched.

        Raises:
            ValueError: when a field is not declared by the descriptor.
        """
        undeclared = [name for name in fields if name not in descriptor]
        if undeclared:
            raise ValueError(
                f"Fields {undeclared} not declared for series {'-'.join(series_name)}"
            )

        present = {name: value for name, value in fields.items() if value is not None}
        if not present:
            logger.debug(f"No values for series {'-'.join(series_name)}, skipped")
            return False

        if len(present) != len(fields):
            trimmed = SeriesDescriptor.make()
            for ds in descriptor.datasets:
                if ds.name in present:
                    trimmed.add_dataset(ds.name, ds.type, ds.min, ds.max)
            descriptor = trimmed

        await self.sink.put(
            MetricWrite(
                device_id=self.device.id,
                hostname=self.device.hostname,
                measurement=measurement,
                series_name=list(series_name),
                descriptor=descriptor,
                fields=present,
                tags=dict(tags or {}),
            )
        )
        self.emitted += 1
        return True
