"""Base classes and data structures for device polling."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy.ext.asyncio import AsyncSession

from models import DeviceIdentity
from normalizers import MetricGroup
from services.cloud_api import CloudApiClient
from services.credentials import is_configured
from services.errors import RemoteFetchFailure
from services.metrics import MetricEmitter
from services.sync import SyncResult, purge_sub_resources

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    """Outcome of polling one device."""

    device_id: int
    hostname: str
    role: str
    success: bool = True
    skipped: bool = False
    status: Optional[bool] = None
    emitted: int = 0
    sync: Dict[str, SyncResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    polled_at: datetime = field(default_factory=datetime.utcnow)
    duration_ms: float = 0.0

    def sync_summary(self) -> Dict[str, Dict[str, int]]:
        return {name: vars(outcome) for name, outcome in self.sync.items()}


class DevicePoller(ABC):
    """Abstract base class for role-specific pollers."""

    role: str = ""
    sub_resource_models: Tuple[Type, ...] = ()

    async def should_poll(self, db: AsyncSession, device: DeviceIdentity) -> bool:
        """True iff the role matches and credentials resolve."""
        return device.role == self.role and await is_configured(db, device)

    @abstractmethod
    async def poll(
        self,
        db: AsyncSession,
        device: DeviceIdentity,
        emitter: MetricEmitter,
        client: CloudApiClient,
    ) -> PollResult:
        """Fetch, normalize, synchronize and emit for one device."""
        pass

    async def cleanup(self, db: AsyncSession, device: DeviceIdentity) -> int:
        """Hard-delete this poller's sub-resources for a decommissioned device."""
        return await purge_sub_resources(db, device.id, self.sub_resource_models)

    async def fetch(
        self,
        result: PollResult,
        what: str,
        call: Callable[..., Awaitable[Any]],
        *args: Any,
        level: int = logging.WARNING,
    ) -> Any:
        """
        Run one API call in isolation.

        A failure is logged, recorded on ``result`` and returned as None so
        sibling fetches still run.
        """
        try:
            return await call(*args)
        except RemoteFetchFailure as e:
            logger.log(level, f"Device {result.hostname}: failed fetching {what}: {e}")
            result.errors.append(f"{what}: {e}")
            return None

    async def emit_group(self, emitter: MetricEmitter, group: MetricGroup) -> bool:
        if not group:
            return False
        return await emitter.emit(
            group.measurement,
            group.series_name,
            group.descriptor(),
            dict(group.values),
            tags=group.tags,
        )
