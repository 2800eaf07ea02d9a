from sqlalchemy import Column, Integer, BigInteger, String, Index, UniqueConstraint

from database import Base
from .sub_resource import SubResourceMixin


class Port(SubResourceMixin, Base):
    """SQLAlchemy model for ethernet interfaces on a cloud device."""

    __tablename__ = "ports"

    MUTABLE_FIELDS = (
        "if_index",
        "if_descr",
        "if_type",
        "oper_status",
        "admin_status",
        "speed",
        "duplex",
        "in_octets",
        "out_octets",
        "in_ucast_pkts",
        "out_ucast_pkts",
        "in_errors",
        "out_errors",
    )
    VALUE_FIELDS = {"in_octets": "in_octets_prev", "out_octets": "out_octets_prev"}

    # Port information
    if_name = Column(String(64), nullable=False)  # Stable key, e.g. eth0
    if_index = Column(Integer, nullable=True)
    if_descr = Column(String(255), nullable=True)
    if_type = Column(String(32), nullable=True, default="ethernetCsmacd")
    oper_status = Column(String(10), nullable=True)  # up/down
    admin_status = Column(String(10), nullable=True)
    speed = Column(BigInteger, nullable=True)  # bits per second
    duplex = Column(String(16), nullable=True)  # fullDuplex/halfDuplex

    # Counters
    in_octets = Column(BigInteger, nullable=True)
    out_octets = Column(BigInteger, nullable=True)
    in_octets_prev = Column(BigInteger, nullable=True)
    out_octets_prev = Column(BigInteger, nullable=True)
    in_ucast_pkts = Column(BigInteger, nullable=True)
    out_ucast_pkts = Column(BigInteger, nullable=True)
    in_errors = Column(BigInteger, nullable=True)
    out_errors = Column(BigInteger, nullable=True)

    # Indexes
    __table_args__ = (
        UniqueConstraint("device_id", "if_name", name="uq_port_device_ifname"),
        Index("idx_port_is_active", "is_active"),
    )

    def composite_key(self):
        return ("port", "ethernet", self.if_name)

    def __repr__(self):
        return f"<Port(id={self.id}, device_id={self.device_id}, if_name={self.if_name}, oper={self.oper_status})>"
