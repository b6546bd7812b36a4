"""Notification model."""

from datetime import datetime

from sqlalchemy import String, Integer, Text, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from lorawatch.models.base import Base, utcnow


class Notification(Base):
    """In-app notification emitted by a fired alarm. Append-only."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_alarm_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    recipient_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    send_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    sender_ip: Mapped[str] = mapped_column(String(45), default="System", nullable=False)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    dev_eui: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, alarm={self.sender_alarm_id}, dev_eui={self.dev_eui})>"
