"""Audit logging service for tracking engine actions."""

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from lorawatch.core.errors import StoreError
from lorawatch.models.audit import AuditLog, AuditAction

logger = structlog.get_logger()


class SqlAuditSink:
    """Writes audit log entries, one short transaction per entry."""

    def __init__(self, session_factory: async_sessionmaker, changed_by: str = "system"):
        """Initialize audit sink with a session factory."""
        self.session_factory = session_factory
        self.changed_by = changed_by

    async def record(
        self,
        action: AuditAction | str,
        entity_type: str,
        entity_id: str,
        description: str | None = None,
        dev_eui: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        """Create an audit log entry.

        Args:
            action: The type of action being logged
            entity_type: Type of entity affected (e.g., "alarm", "automation_rule")
            entity_id: ID of the affected entity
            description: Human-readable description of the action
            dev_eui: Device the action concerns
            old_values: Previous state (e.g. receiver outputs before actuation)
            new_values: New state (e.g. the command sent)
        """
        audit_log = AuditLog(
            id=uuid.uuid4(),
            timestamp=datetime.now(timezone.utc),
            action=AuditAction(action),
            changed_by=self.changed_by,
            entity_type=entity_type,
            entity_id=entity_id,
            dev_eui=dev_eui,
            description=description,
            old_values=old_values,
            new_values=new_values,
        )

        try:
            async with self.session_factory() as session:
                session.add(audit_log)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write audit log: {e}", dev_eui=dev_eui) from e

        logger.debug(
            "Audit entry recorded",
            action=audit_log.action.value,
            entity_type=entity_type,
            entity_id=entity_id,
        )
