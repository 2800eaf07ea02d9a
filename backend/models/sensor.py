"""
Sensor models.

``Sensor`` holds environmental/health readings (temperature, humidity,
pressure).  ``WirelessSensor`` holds radio readings (clients, utilization,
channel, transmit power, noise floor).  Both keep the current and the
previous reading so rate-of-change can be shown without the time series.
"""

from sqlalchemy import Column, String, Float, UniqueConstraint
from sqlalchemy.orm import declared_attr

from database import Base
from .sub_resource import SubResourceMixin


class SensorColumns(SubResourceMixin):
    """Columns shared by both sensor tables."""

    MUTABLE_FIELDS = (
        "sensor_descr",
        "sensor_current",
        "sensor_limit_low",
        "sensor_limit",
        "sensor_unit",
        "rrd_type",
    )
    VALUE_FIELDS = {"sensor_current": "sensor_prev"}

    sensor_class = Column(String(32), nullable=False)  # temperature/clients/...
    sensor_type = Column(String(32), nullable=False)  # source tag, e.g. "cloud"
    sensor_index = Column(String(64), nullable=False)  # band key, env key, ...
    sensor_descr = Column(String(255), nullable=True)  # Display only, never keyed
    sensor_current = Column(Float, nullable=True)
    sensor_prev = Column(Float, nullable=True)
    sensor_limit_low = Column(Float, nullable=True)
    sensor_limit = Column(Float, nullable=True)
    sensor_unit = Column(String(16), nullable=True)
    rrd_type = Column(String(24), nullable=True, default="gauge")

    @declared_attr
    def __table_args__(cls):
        return (
            UniqueConstraint(
                "device_id",
                "sensor_class",
                "sensor_type",
                "sensor_index",
                name=f"uq_{cls.__tablename__}_key",
            ),
        )

    def composite_key(self):
        return (self.sensor_class, self.sensor_type, self.sensor_index)

    def __repr__(self):
        return (
            f"<{type(self).__name__}(id={self.id}, device_id={self.device_id}, "
            f"{self.sensor_class}/{self.sensor_type}/{self.sensor_index}={self.sensor_current})>"
        )


class Sensor(SensorColumns, Base):
    __tablename__ = "sensors"


class WirelessSensor(SensorColumns, Base):
    __tablename__ = "wireless_sensors"
