"""Telemetry history and latest discrete device state."""

from datetime import datetime

from sqlalchemy import String, Float, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from lorawatch.models.base import Base, utcnow


class TelemetrySample(Base):
    """Numeric telemetry history (narrow schema, one metric per row)."""

    __tablename__ = "telemetry_samples"

    time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
        nullable=False,
    )
    dev_eui: Mapped[str] = mapped_column(String(16), primary_key=True, nullable=False)
    metric_name: Mapped[str] = mapped_column(String(100), primary_key=True, nullable=False)
    value_numeric: Mapped[float] = mapped_column(Float, nullable=False)

    def __repr__(self) -> str:
        return f"<TelemetrySample(time={self.time}, dev_eui={self.dev_eui}, metric={self.metric_name})>"


class DeviceState(Base):
    """Last reported discrete outputs (relays, GPIO) of a controller."""

    __tablename__ = "device_states"

    dev_eui: Mapped[str] = mapped_column(String(16), primary_key=True)
    state: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
