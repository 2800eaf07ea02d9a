from sqlalchemy import Column, Integer, String, UniqueConstraint

from database import Base
from .sub_resource import SubResourceMixin


class AccessPoint(SubResourceMixin, Base):
    """
    Org-level AP inventory row, attached to the org-proxy device.

    Keyed by MAC so a renamed AP keeps its row.  Radio columns describe the
    AP's primary (highest frequency) band.
    """

    __tablename__ = "access_points"

    MUTABLE_FIELDS = (
        "name",
        "model",
        "site_id",
        "site_name",
        "radio_band",
        "channel",
        "txpow",
        "radioutil",
        "num_clients",
        "num_wlans",
    )
    VALUE_FIELDS = {"num_clients": "num_clients_prev"}

    mac_address = Column(String(17), nullable=False)
    name = Column(String(255), nullable=True)
    model = Column(String(64), nullable=True)
    site_id = Column(String(36), nullable=True, index=True)
    site_name = Column(String(255), nullable=True)
    radio_band = Column(String(16), nullable=True)
    channel = Column(Integer, nullable=True)
    txpow = Column(Integer, nullable=True)
    radioutil = Column(Integer, nullable=True)
    num_clients = Column(Integer, nullable=True)
    num_clients_prev = Column(Integer, nullable=True)
    num_wlans = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("device_id", "mac_address", name="uq_access_point_mac"),
    )

    def composite_key(self):
        return ("access_point", "radio", self.mac_address)

    def __repr__(self):
        return f"<AccessPoint(id={self.id}, name={self.name}, mac={self.mac_address})>"
