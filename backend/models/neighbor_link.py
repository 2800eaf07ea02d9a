from sqlalchemy import Column, String, UniqueConstraint

from database import Base
from .sub_resource import SubResourceMixin


class NeighborLink(SubResourceMixin, Base):
    """A link-layer neighbor (LLDP) seen on one local port of a device."""

    __tablename__ = "neighbor_links"

    MUTABLE_FIELDS = (
        "remote_hostname",
        "remote_port",
        "remote_port_descr",
        "remote_chassis_id",
        "remote_mgmt_ip",
        "remote_platform",
    )

    protocol = Column(String(16), nullable=False, default="lldp")
    local_port = Column(String(64), nullable=False)
    remote_hostname = Column(String(255), nullable=True)
    remote_port = Column(String(255), nullable=True)
    remote_port_descr = Column(String(255), nullable=True)
    remote_chassis_id = Column(String(64), nullable=True)
    remote_mgmt_ip = Column(String(45), nullable=True)
    remote_platform = Column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("device_id", "protocol", "local_port", name="uq_neighbor_local_port"),
    )

    def composite_key(self):
        return ("neighbor", self.protocol, self.local_port)

    def __repr__(self):
        return (
            f"<NeighborLink(id={self.id}, device_id={self.device_id}, "
            f"{self.local_port} -> {self.remote_hostname}:{self.remote_port})>"
        )
