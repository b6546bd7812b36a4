"""Audit log model for tracking engine actions."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import String, Text, Enum as SQLEnum, DateTime, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from lorawatch.models.base import Base


class AuditAction(str, Enum):
    """Types of auditable actions."""

    ALARM_FIRED = "alarm_fired"
    AUTOMATION_EXECUTED = "automation_executed"
    AUTOMATION_SUPPRESSED = "automation_suppressed"
    AUTOMATION_FAILED = "automation_failed"


class AuditLog(Base):
    """Audit trail of alarm firings and actuation decisions."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # When the action occurred
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # What action was performed
    action: Mapped[AuditAction] = mapped_column(
        SQLEnum(AuditAction, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )

    # "system" for engine-initiated actions
    changed_by: Mapped[str] = mapped_column(String(100), default="system", nullable=False)

    # What entity was affected
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    dev_eui: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Before/after state for changes (JSON for flexibility)
    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_timestamp_action", "timestamp", "action"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, timestamp={self.timestamp})>"
