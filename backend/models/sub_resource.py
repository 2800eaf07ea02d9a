"""
Shared columns and keying for per-device sub-resources.

Every sub-resource row belongs to exactly one DeviceIdentity and is
identified inside that device by a composite key (class, type, index) that
must not depend on display attributes.  Rows are never hard-deleted by a
poll; a poll that no longer observes a row flips ``is_active`` off.
"""

from datetime import datetime
from typing import Dict, Tuple

from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import declared_attr


class SubResourceMixin:
    """Columns and hooks common to ports, sensors, neighbors and APs."""

    # Columns copied onto the row when an observation matches an existing key
    MUTABLE_FIELDS: Tuple[str, ...] = ()
    # current-value column -> previous-value column, shifted on every update
    VALUE_FIELDS: Dict[str, str] = {}

    id = Column(Integer, primary_key=True, index=True)

    @declared_attr
    def device_id(cls):
        return Column(
            Integer,
            ForeignKey("device_identities.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    is_active = Column(Boolean, default=True, nullable=False)
    first_seen = Column(DateTime, default=datetime.utcnow)
    last_seen = Column(DateTime, default=datetime.utcnow)

    def composite_key(self) -> Tuple[str, str, str]:
        raise NotImplementedError
