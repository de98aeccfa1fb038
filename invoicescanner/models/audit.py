"""
Audit Models for Invoice Scanner

Every significant step of the scan → review → commit workflow is logged.
This provides:
1. Traceability of what was extracted, edited, and committed
2. Debugging information when extraction or persistence fails
3. Ability to reconstruct a session from the log

DESIGN DECISION: Audit events are append-only log lines. They are never
stored alongside the collection.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the workflow has its own event type.
    """
    # Capture & extraction
    CAPTURE_FAILED = "capture_failed"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"

    # Human review
    REVIEW_STARTED = "review_started"
    DRAFT_EDITED = "draft_edited"
    DRAFT_DISCARDED = "draft_discarded"

    # Persistence
    RECORD_COMMITTED = "record_committed"
    COMMIT_FAILED = "commit_failed"
    COLLECTION_LOADED = "collection_loaded"
    COLLECTION_LOAD_FAILED = "collection_load_failed"
    COLLECTION_CLEARED = "collection_cleared"
    CLEAR_FAILED = "clear_failed"

    # Export
    COLLECTION_EXPORTED = "collection_exported"
    EXPORT_FAILED = "export_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'record', 'draft', 'collection')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one scan share an ID
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.extraction_failed("timeout", correlation_id)
        event = AuditEventBuilder.record_committed(record_id, "invoice", correlation_id)
    """

    @staticmethod
    def capture_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CAPTURE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="capture",
            correlation_id=correlation_id,
            description="Capture device unavailable",
            error_message=error_message,
        )

    @staticmethod
    def extraction_completed(
        variant: str,
        missing_fields: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="draft",
            correlation_id=correlation_id,
            description=f"Extraction produced a {variant} draft",
            details={
                "variant": variant,
                "missing_fields": missing_fields,
            },
        )

    @staticmethod
    def extraction_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="draft",
            correlation_id=correlation_id,
            description="Extraction failed; image discarded",
            error_message=error_message,
        )

    @staticmethod
    def review_started(
        variant: str,
        is_consistent: bool,
        deviation_percent: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REVIEW_STARTED,
            entity_type="draft",
            correlation_id=correlation_id,
            description=f"Review started for {variant} draft",
            details={
                "is_consistent": is_consistent,
                "deviation_percent": deviation_percent,
            },
        )

    @staticmethod
    def draft_edited(
        fields: list[str],
        is_consistent: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_EDITED,
            severity=AuditSeverity.DEBUG,
            entity_type="draft",
            correlation_id=correlation_id,
            description=f"Draft edited: {', '.join(fields)}",
            details={
                "fields": fields,
                "is_consistent": is_consistent,
            },
            is_user_action=True,
        )

    @staticmethod
    def draft_discarded(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_DISCARDED,
            entity_type="draft",
            correlation_id=correlation_id,
            description="User discarded the draft",
            is_user_action=True,
        )

    @staticmethod
    def record_committed(
        record_id: str,
        variant: str,
        is_consistent: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_COMMITTED,
            entity_type="record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Committed {variant} record",
            details={
                "variant": variant,
                "is_consistent": is_consistent,
            },
            is_user_action=True,
        )

    @staticmethod
    def commit_failed(
        error_message: str,
        correlation_id: UUID,
        missing_fields: Optional[list[str]] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMIT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="draft",
            correlation_id=correlation_id,
            description="Commit failed; draft preserved for retry",
            error_message=error_message,
            details={"missing_fields": missing_fields or []},
        )

    @staticmethod
    def collection_loaded(
        storage_key: str,
        record_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_LOADED,
            entity_type="collection",
            entity_id=storage_key,
            description=f"Loaded {record_count} records",
            details={"record_count": record_count},
        )

    @staticmethod
    def collection_load_failed(
        storage_key: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_LOAD_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="collection",
            entity_id=storage_key,
            description="Stored collection unreadable; starting empty",
            error_message=error_message,
        )

    @staticmethod
    def collection_cleared(storage_key: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_CLEARED,
            entity_type="collection",
            entity_id=storage_key,
            description="Collection cleared",
            is_user_action=True,
        )

    @staticmethod
    def collection_exported(
        storage_key: str,
        record_count: int,
        path: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_EXPORTED,
            entity_type="collection",
            entity_id=storage_key,
            description=f"Exported {record_count} records",
            details={
                "record_count": record_count,
                "path": path,
            },
            is_user_action=True,
        )

    @staticmethod
    def clear_failed(
        storage_key: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLEAR_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="collection",
            entity_id=storage_key,
            description="Collection could not be cleared",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def export_failed(
        storage_key: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="collection",
            entity_id=storage_key,
            description="Export file could not be written",
            error_message=error_message,
            is_user_action=True,
        )
