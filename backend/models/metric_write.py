from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index

from database import Base


class MetricWrite(Base):
    """
    Append-only log of time-series writes handed to the storage layer.

    No foreign key to device_identities: history outlives a decommissioned
    device.
    """

    __tablename__ = "metric_writes"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(Integer, nullable=False)
    hostname = Column(String(255), nullable=True)
    measurement = Column(String(64), nullable=False)
    series_name = Column(String(255), nullable=False)
    descriptor = Column(JSON, nullable=False)  # [{name, type, min, max}, ...]
    fields = Column(JSON, nullable=False)
    tags = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_metric_write_series", "device_id", "series_name"),
    )

    def __repr__(self):
        return f"<MetricWrite(id={self.id}, device_id={self.device_id}, series={self.series_name})>"
