"""Alarm configuration models."""

from sqlalchemy import String, Integer, Float, Boolean, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lorawatch.models.base import Base, TimestampMixin


class Alarm(Base, TimestampMixin):
    """Per-device threshold alarm. Owned by the configuration layer."""

    __tablename__ = "alarms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dev_eui: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    min_threshold: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_threshold: Mapped[float | None] = mapped_column(Float, nullable=True)

    # AlarmMetric values, e.g. ["temperature", "humidity"]
    metrics: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    is_time_limit_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    zone_category: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Lookback window for the defrost trend method
    defrost_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Delivery channels
    sms: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notification: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    recipient_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    windows: Mapped[list["AlarmWindow"]] = relationship(
        "AlarmWindow",
        back_populates="alarm",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Alarm(id={self.id}, dev_eui={self.dev_eui}, active={self.is_active})>"


class AlarmWindow(Base):
    """Armed window; day_of_week 0 is every day, 1..7 is Monday..Sunday."""

    __tablename__ = "alarm_windows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alarm_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("alarms.id", ondelete="CASCADE"),
        nullable=False,
    )
    day_of_week: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    end_time: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    alarm: Mapped["Alarm"] = relationship("Alarm", back_populates="windows")

    __table_args__ = (
        Index("ix_alarm_windows_alarm_day", "alarm_id", "day_of_week"),
    )
