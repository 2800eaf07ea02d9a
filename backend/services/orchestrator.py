"""
Poll orchestration.

Sequences discovery and per-device polls:

- ``poll_device`` runs one device's fetch -> normalize -> synchronize -> emit
  and never raises
- ``run_poll_cycle`` runs discovery once, then every pollable device with
  bounded concurrency, one session per device
- ``PollScheduler`` repeats cycles in the background
- ``decommission_device`` is the only path that hard-deletes anything
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models import DeviceIdentity
from pollers import PollResult, get_poller
from utils.audit import audit
from utils.logging_utils import LogTimer
from .credentials import resolve_for_device
from .discovery import ClientFactory, DiscoveryGuard, DiscoveryResult, run_discovery
from .cloud_api import CloudApiClient
from .errors import ConfigurationMissing
from .metrics import MetricEmitter, MetricSink
from .sync import purge_sub_resources

logger = logging.getLogger(__name__)


@dataclass
class PollCycleResult:
    """Aggregate outcome of one poll cycle."""

    cycle_id: str
    discovery: List[DiscoveryResult] = field(default_factory=list)
    polls: List[PollResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    duration_ms: float = 0.0

    @property
    def devices_polled(self) -> int:
        return sum(1 for p in self.polls if not p.skipped)

    @property
    def devices_failed(self) -> int:
        return sum(1 for p in self.polls if not p.success)

    @property
    def metrics_emitted(self) -> int:
        return sum(p.emitted for p in self.polls)


async def poll_device(
    db: AsyncSession,
    device: DeviceIdentity,
    sink: MetricSink,
    client_factory: ClientFactory = CloudApiClient.from_credentials,
) -> PollResult:
    """
    Poll one device. Never raises.

    Unresolved credentials skip the device quietly; any other exception is
    logged with the device's identity and reported as a failed poll.
    """
    start = time.perf_counter()
    result = PollResult(device_id=device.id, hostname=device.hostname, role=device.role)

    try:
        poller = get_poller(device.role)
        try:
            credentials = await resolve_for_device(db, device)
        except ConfigurationMissing as e:
            logger.debug(f"Device {device.hostname}: not polled ({e})")
            result.skipped = True
            return result

        emitter = MetricEmitter(sink, device)
        async with client_factory(credentials) as client:
            result = await poller.poll(db, device, emitter, client)
        await db.commit()
    except Exception as e:
        logger.error(
            f"Poll failed for device {device.hostname} "
            f"(id={device.id}, role={device.role}, fingerprint={device.fingerprint}): {e}",
            exc_info=True,
        )
        await db.rollback()
        result.success = False
        result.errors.append(str(e))

    result.duration_ms = (time.perf_counter() - start) * 1000
    if not result.skipped:
        logger.info(
            f"Polled {result.hostname}: status={result.status} emitted={result.emitted} "
            f"errors={len(result.errors)}",
            extra={"duration_ms": result.duration_ms},
        )
    return result


async def poll_device_by_id(
    session_factory: async_sessionmaker,
    device_id: int,
    sink: MetricSink,
    client_factory: ClientFactory = CloudApiClient.from_credentials,
) -> Optional[PollResult]:
    """Poll one device in its own session. Returns None if it does not exist."""
    async with session_factory() as db:
        device = await db.get(DeviceIdentity, device_id)
        if device is None:
            return None
        return await poll_device(db, device, sink, client_factory)


async def run_poll_cycle(
    session_factory: async_sessionmaker,
    sink: MetricSink,
    client_factory: ClientFactory = CloudApiClient.from_credentials,
    concurrency: Optional[int] = None,
    guard: Optional[DiscoveryGuard] = None,
    discover: bool = True,
) -> PollCycleResult:
    """
    Run discovery once, then poll every device whose poller accepts it.

    Discovery completes before polls start so freshly discovered identities
    are polled in the same cycle.
    """
    cycle = PollCycleResult(cycle_id=uuid.uuid4().hex[:12])
    start = time.perf_counter()

    with LogTimer(logger, f"Poll cycle {cycle.cycle_id}") as timer:
        if discover:
            cycle.discovery = await run_discovery(
                session_factory, client_factory, guard=guard, cycle_id=cycle.cycle_id
            )

        async with session_factory() as db:
            rows = await db.execute(
                select(DeviceIdentity.id, DeviceIdentity.role).order_by(DeviceIdentity.id)
            )
            candidates = rows.all()

        semaphore = asyncio.Semaphore(max(concurrency or settings.POLL_CONCURRENCY, 1))

        async def _one(device_id: int, role: str) -> Optional[PollResult]:
            async with semaphore:
                async with session_factory() as db:
                    device = await db.get(DeviceIdentity, device_id)
                    if device is None:
                        return None
                    try:
                        poller = get_poller(role)
                    except ValueError as e:
                        logger.warning(f"Device {device.hostname}: {e}")
                        return None
                    try:
                        if not await poller.should_poll(db, device):
                            return None
                    except Exception as e:
                        logger.error(
                            f"Poll check failed for device {device.hostname}: {e}",
                            exc_info=True,
                        )
                        return PollResult(
                            device_id=device.id,
                            hostname=device.hostname,
                            role=role,
                            success=False,
                            errors=[str(e)],
                        )
                    return await poll_device(db, device, sink, client_factory)

        outcomes = await asyncio.gather(*(_one(d, r) for d, r in candidates))
        cycle.polls = [o for o in outcomes if o is not None]
        timer.set_record_count(len(cycle.polls))
        timer.add_info("devices_failed", cycle.devices_failed)

    cycle.duration_ms = (time.perf_counter() - start) * 1000
    audit.log_poll_cycle(
        cycle_id=cycle.cycle_id,
        status="success" if cycle.devices_failed == 0 else "partial",
        devices_polled=cycle.devices_polled,
        devices_failed=cycle.devices_failed,
        metrics_emitted=cycle.metrics_emitted,
    )
    return cycle


async def decommission_device(db: AsyncSession, device: DeviceIdentity) -> int:
    """
    Hard-delete a device and all of its sub-resources.

    Returns:
        Number of sub-resource rows deleted
    """
    hostname = device.hostname
    try:
        deleted = await get_poller(device.role).cleanup(db, device)
    except ValueError:
        deleted = 0
    # Rows of any other sub-resource type
    deleted += await purge_sub_resources(db, device.id)
    await db.delete(device)
    await db.commit()
    logger.info(f"Decommissioned device {hostname}: {deleted} sub-resource rows removed")
    return deleted


class PollScheduler:
    """
    Background loop running one poll cycle every ``interval`` seconds.

    Started from the application lifespan when POLL_INTERVAL_SECONDS > 0.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        sink: MetricSink,
        interval: float,
        client_factory: ClientFactory = CloudApiClient.from_credentials,
    ):
        self.session_factory = session_factory
        self.sink = sink
        self.interval = interval
        self.client_factory = client_factory
        self.guard = DiscoveryGuard(min_interval=interval)
        self.last_cycle: Optional[PollCycleResult] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Poll scheduler started (interval={self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Poll scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                self.last_cycle = await run_poll_cycle(
                    self.session_factory,
                    self.sink,
                    self.client_factory,
                    guard=self.guard,
                )
            except Exception as e:
                logger.error(f"Poll cycle failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)
