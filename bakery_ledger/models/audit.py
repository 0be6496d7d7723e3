"""
Audit Models for the Bakery Ledger

Every mutation request, every storage failure and every snapshot decision is
recorded as an AuditEvent. Local logging always happens; persisting the
events is optional and depends on an audit storage being configured.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Mutations
    RECORD_SUBMITTED = "record_submitted"
    RECORD_DELETED = "record_deleted"
    PERSISTENCE_FAILED = "persistence_failed"

    # Snapshot handling
    SNAPSHOT_APPLIED = "snapshot_applied"
    STALE_SNAPSHOT_DISCARDED = "stale_snapshot_discarded"
    ACTIVE_USER_CHANGED = "active_user_changed"

    # Receipt recognition
    RECEIPT_RECOGNIZED = "receipt_recognized"
    RECOGNITION_FAILED = "recognition_failed"

    # Export
    EXPORT_COMPLETED = "export_completed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=_utc_now,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What is this about?
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'record', 'snapshot', 'receipt')"
    )
    entity_id: Optional[str] = None
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the audit worksheet.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_deleted(user_id, record_id)
        event = AuditEventBuilder.persistence_failed(user_id, "append", error)
    """

    @staticmethod
    def record_submitted(
        user_id: str,
        record_id: str,
        record_type: str,
        main_category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SUBMITTED,
            user_id=user_id,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record submitted: {record_type} {main_category} {amount}",
            details={
                "type": record_type,
                "main_category": main_category,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        user_id: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            user_id=user_id,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record deletion submitted: {record_id}",
            is_user_action=True,
        )

    @staticmethod
    def persistence_failed(
        user_id: str,
        operation: str,
        error_message: str,
        record_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Storage rejected {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def snapshot_applied(
        user_id: str,
        generation: int,
        record_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_APPLIED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="snapshot",
            description=f"Snapshot applied with {record_count} records",
            details={
                "generation": generation,
                "record_count": record_count,
            },
        )

    @staticmethod
    def stale_snapshot_discarded(
        user_id: Optional[str],
        stale_generation: int,
        current_generation: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_SNAPSHOT_DISCARDED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="snapshot",
            description="Discarded snapshot from a superseded subscription",
            details={
                "stale_generation": stale_generation,
                "current_generation": current_generation,
            },
        )

    @staticmethod
    def active_user_changed(
        previous_user_id: Optional[str],
        user_id: Optional[str],
        generation: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTIVE_USER_CHANGED,
            user_id=user_id,
            description="Active user changed" if user_id else "Active user signed out",
            details={
                "previous_user_id": previous_user_id,
                "generation": generation,
            },
        )

    @staticmethod
    def receipt_recognized(
        total: str,
        item_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_RECOGNIZED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Receipt recognized: total {total}, {item_count} items",
            details={
                "total": total,
                "item_count": item_count,
            },
        )

    @staticmethod
    def recognition_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECOGNITION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt recognition failed; form left unchanged",
            error_message=error_message,
        )

    @staticmethod
    def export_completed(
        user_id: Optional[str],
        path: str,
        row_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_COMPLETED,
            user_id=user_id,
            entity_type="export",
            description=f"Exported {row_count} rows",
            details={
                "path": path,
                "row_count": row_count,
            },
            is_user_action=True,
        )
