"""Automation rule model."""

from sqlalchemy import String, Integer, Text, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from lorawatch.models.base import Base, TimestampMixin


class AutomationRule(Base, TimestampMixin):
    """Condition/action rule linking a sender device to a receiver device."""

    __tablename__ = "automation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    sender_dev_eui: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)
    sender_device_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    receiver_dev_eui: Mapped[str | None] = mapped_column(String(16), nullable=True)
    receiver_device_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    receiver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # "temperature,over,30" for device rules, "1,2,3;08:30" for time rules,
    # the alarm id for alarm rules
    condition: Mapped[str] = mapped_column(Text, nullable=False)

    # Base64 downlink payload(s), ';'-separated
    action: Mapped[str] = mapped_column(Text, nullable=False)

    trigger_type: Mapped[str] = mapped_column(String(20), default="device", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    tenant_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        Index("ix_automation_rules_trigger_active", "trigger_type", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<AutomationRule(id={self.id}, trigger={self.trigger_type}, active={self.is_active})>"
