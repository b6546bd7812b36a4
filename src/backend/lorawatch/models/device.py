"""LoRaWAN device registry, zones and tenants."""

from sqlalchemy import String, Integer, Float, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lorawatch.models.base import Base, TimestampMixin


class Tenant(Base, TimestampMixin):
    """Organization owning devices and zones."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name})>"


class Device(Base, TimestampMixin):
    """End device as registered on the network server."""

    __tablename__ = "devices"

    dev_eui: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Selects the payload decoder and condition grammar
    device_type: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    temperature_calibration: Mapped[float | None] = mapped_column(Float, nullable=True)
    humidity_calibration: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Free-form tags; {"status": "inactive"} disables evaluation
    tags: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    tenant: Mapped["Tenant | None"] = relationship("Tenant")

    @property
    def is_active(self) -> bool:
        status = (self.tags or {}).get("status")
        return status is None or status == "active"

    def __repr__(self) -> str:
        return f"<Device(dev_eui={self.dev_eui}, name={self.name}, type={self.device_type})>"


class Zone(Base, TimestampMixin):
    """Physical area grouping devices; its category selects the alarm strategy."""

    __tablename__ = "zones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    tenant_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    tenant: Mapped["Tenant | None"] = relationship("Tenant")

    devices: Mapped[list["ZoneDevice"]] = relationship(
        "ZoneDevice",
        back_populates="zone",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Zone(id={self.id}, name={self.name}, category={self.category})>"


class ZoneDevice(Base):
    """Membership of a device in a zone."""

    __tablename__ = "zone_devices"

    zone_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("zones.id", ondelete="CASCADE"),
        primary_key=True,
    )
    dev_eui: Mapped[str] = mapped_column(String(16), primary_key=True, index=True)

    zone: Mapped["Zone"] = relationship("Zone", back_populates="devices")
