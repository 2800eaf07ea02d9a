import re
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text

from database import Base


class TenantConfig(Base):
    """One remote cloud organization and the credentials used to reach it."""

    __tablename__ = "tenant_configs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    api_url = Column(String(255), nullable=False)  # e.g. https://api.mist.com
    api_key = Column(Text, nullable=False)
    org_id = Column(String(36), nullable=False, unique=True, index=True)
    site_ids = Column(Text, nullable=True)  # Comma separated; empty = all sites
    enabled = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def site_id_list(self) -> list[str]:
        """Return the site allow-list (empty list means all sites)."""
        if not self.site_ids:
            return []
        return [part for part in re.split(r"[\s,]+", self.site_ids) if part]

    def __repr__(self):
        return f"<TenantConfig(id={self.id}, name={self.name}, org_id={self.org_id})>"
