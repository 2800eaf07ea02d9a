"""
Sub-resource synchronization.

Reconciles the sub-resources derived from one poll against what is stored
for the device:

- observed and already stored  -> updated in place (reactivated if inactive)
- observed and not stored      -> created
- stored, active, not observed -> marked inactive once, after all
                                  observations are processed

Rows are keyed by ``composite_key()`` which never includes display fields.
Hard deletion only happens through ``purge_sub_resources``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Type

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from models import SUB_RESOURCE_MODELS

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Counts from one synchronization pass."""

    created: int = 0
    updated: int = 0
    reactivated: int = 0
    deactivated: int = 0

    @property
    def changed(self) -> int:
        return self.created + self.reactivated + self.deactivated

    def __str__(self) -> str:
        return (
            f"+{self.created} ~{self.updated} "
            f"^{self.reactivated} -{self.deactivated}"
        )


async def synchronize(
    db: AsyncSession,
    model: Type,
    device_id: int,
    observed: Iterable,
    keep: Optional[Callable[[object], bool]] = None,
) -> SyncResult:
    """
    Reconcile ``observed`` (unsaved model instances) with stored rows.

    Args:
        db: Database session
        model: Sub-resource model class
        device_id: Owning DeviceIdentity id
        observed: Instances built from the current poll
        keep: Optional predicate; unmatched rows for which it returns True
            are left active (their source data could not be fetched)

    Returns:
        SyncResult with created/updated/reactivated/deactivated counts
    """
    result = SyncResult()
    now = datetime.utcnow()

    # Inactive rows are loaded too so a returning key reuses its row
    rows = await db.execute(select(model).where(model.device_id == device_id))
    current = {row.composite_key(): row for row in rows.scalars().all()}
    unseen = {key for key, row in current.items() if row.is_active}
    processed = set()

    for item in observed:
        key = item.composite_key()
        if key in processed:
            logger.warning(
                f"Duplicate {model.__tablename__} key {key} for device {device_id}, ignored"
            )
            continue
        processed.add(key)

        row = current.get(key)
        if row is None:
            item.device_id = device_id
            item.is_active = True
            item.first_seen = now
            item.last_seen = now
            db.add(item)
            current[key] = item
            result.created += 1
            continue

        for value_field, prev_field in model.VALUE_FIELDS.items():
            setattr(row, prev_field, getattr(row, value_field))
        for name in model.MUTABLE_FIELDS:
            setattr(row, name, getattr(item, name))
        row.last_seen = now
        if row.is_active:
            result.updated += 1
        else:
            row.is_active = True
            result.reactivated += 1
        unseen.discard(key)

    for key in unseen:
        row = current[key]
        if keep is not None and keep(row):
            continue
        row.is_active = False
        result.deactivated += 1

    await db.flush()

    if result.changed:
        logger.info(f"Synced {model.__tablename__} for device {device_id}: {result}")
    else:
        logger.debug(f"Synced {model.__tablename__} for device {device_id}: {result}")
    return result


async def active_sub_resources(db: AsyncSession, model: Type, device_id: int) -> List:
    rows = await db.execute(
        select(model)
        .where(model.device_id == device_id, model.is_active.is_(True))
        .order_by(model.id)
    )
    return list(rows.scalars().all())


async def purge_sub_resources(
    db: AsyncSession,
    device_id: int,
    models: Optional[Iterable[Type]] = None,
) -> int:
    """Hard-delete sub-resources of a device. Returns rows deleted."""
    deleted = 0
    for model in models or SUB_RESOURCE_MODELS:
        outcome = await db.execute(delete(model).where(model.device_id == device_id))
        deleted += outcome.rowcount or 0
    logger.info(f"Purged {deleted} sub-resource rows for device {device_id}")
    return deleted
