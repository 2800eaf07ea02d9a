"""
Device Identity model for remote cloud-managed devices.

A DeviceIdentity is the local record for one remote entity: either the
proxy that represents a whole cloud organization ("cloud-org") or a
physical access point ("cloud-ap").  Exactly one record exists per
(role, fingerprint) pair.  The fingerprint is the remote device id, or the
MAC address when the remote id was not known at creation time.

Attributes hold the free-form key/value data used to locate the remote
entity on later polls (org_id, site_id, device_id, mac, ...).
"""

from datetime import datetime
import uuid
from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    Boolean,
    DateTime,
    Text,
    JSON,
    Index,
    UniqueConstraint,
)

from database import Base

ROLE_ORG = "cloud-org"
ROLE_AP = "cloud-ap"
VALID_ROLES = (ROLE_ORG, ROLE_AP)


class DeviceIdentity(Base):
    """SQLAlchemy model for a discovered cloud device."""

    __tablename__ = "device_identities"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)
    guid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Identity
    hostname = Column(String(255), nullable=False, unique=True)  # Operator-editable
    display_name = Column(String(255), nullable=True)  # Refreshed from the remote side
    role = Column(String(20), nullable=False)  # cloud-org / cloud-ap
    fingerprint = Column(String(64), nullable=False)  # remote id or MAC
    ip_address = Column(String(45), nullable=True)
    attributes = Column(JSON, nullable=True)

    # Inventory, last known value wins
    hardware = Column(String(255), nullable=True)
    version = Column(String(255), nullable=True)
    serial = Column(String(255), nullable=True)
    uptime = Column(BigInteger, nullable=True)
    sys_descr = Column(Text, nullable=True)

    # Status
    status = Column(Boolean, default=True)
    status_reason = Column(String(50), nullable=True, default="")

    # Timestamps
    first_seen = Column(DateTime, default=datetime.utcnow)
    last_seen = Column(DateTime, default=datetime.utcnow)  # Last discovery sighting
    last_polled = Column(DateTime, nullable=True)

    # Indexes
    __table_args__ = (
        UniqueConstraint("role", "fingerprint", name="uq_device_role_fingerprint"),
        Index("idx_device_identity_role", "role"),
        Index("idx_device_identity_ip", "ip_address"),
    )

    def get_attrib(self, key: str, default: str = "") -> str:
        """Return a single attribute as a string ('' when unset)."""
        value = (self.attributes or {}).get(key)
        return default if value is None else str(value)

    def set_attribs(self, **values) -> None:
        """Merge attributes; the JSON column is reassigned so the change is tracked."""
        merged = dict(self.attributes or {})
        for key, value in values.items():
            if value is None or value == "":
                merged.pop(key, None)
            else:
                merged[key] = value
        self.attributes = merged

    def __repr__(self):
        return (
            f"<DeviceIdentity(id={self.id}, hostname={self.hostname}, "
            f"role={self.role}, fingerprint={self.fingerprint})>"
        )
