"""
Audit Models for Party Ledger

Every mutation of a party or its ledger is logged for audit purposes.
This provides:
1. Traceability of who changed which balance and when
2. Debugging information when things go wrong
3. Ability to reconstruct history after an edit or delete

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from party_ledger.models.party import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Parties
    PARTY_CREATED = "party_created"
    PARTY_UPDATED = "party_updated"
    PARTY_DELETED = "party_deleted"

    # Entries
    ENTRY_ADDED = "entry_added"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"

    # Rejections
    VALIDATION_FAILED = "validation_failed"
    OWNERSHIP_VIOLATION = "ownership_violation"

    # System events
    STORE_ERROR = "store_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'party', 'entry')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    party_id: Optional[UUID] = Field(
        default=None,
        description="Party whose ledger this event touches"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events from one service call"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

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
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "party_id": str(self.party_id) if self.party_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         party_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.party_id) if self.party_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.party_created(party_id, name, correlation_id)
        event = AuditEventBuilder.entry_deleted(entry_id, party_id, correlation_id)
    """

    @staticmethod
    def party_created(
        party_id: UUID,
        name: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTY_CREATED,
            entity_type="party",
            entity_id=party_id,
            party_id=party_id,
            correlation_id=correlation_id,
            description=f"Party created: {name}",
            details={"name": name},
        )

    @staticmethod
    def party_updated(
        party_id: UUID,
        changed_fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTY_UPDATED,
            entity_type="party",
            entity_id=party_id,
            party_id=party_id,
            correlation_id=correlation_id,
            description=f"Party updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def party_deleted(
        party_id: UUID,
        entries_removed: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTY_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="party",
            entity_id=party_id,
            party_id=party_id,
            correlation_id=correlation_id,
            description=f"Party deleted with {entries_removed} entries",
            details={"entries_removed": entries_removed},
        )

    @staticmethod
    def entry_added(
        entry_id: UUID,
        party_id: UUID,
        kind: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_ADDED,
            entity_type="entry",
            entity_id=entry_id,
            party_id=party_id,
            correlation_id=correlation_id,
            description=f"Entry added: {kind} {amount}",
            details={"kind": kind, "amount": amount},
        )

    @staticmethod
    def entry_updated(
        entry_id: UUID,
        party_id: UUID,
        previous: dict[str, str],
        current: dict[str, str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            entity_type="entry",
            entity_id=entry_id,
            party_id=party_id,
            correlation_id=correlation_id,
            description="Entry updated",
            details={"previous": previous, "current": current},
        )

    @staticmethod
    def entry_deleted(
        entry_id: UUID,
        party_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="entry",
            entity_id=entry_id,
            party_id=party_id,
            correlation_id=correlation_id,
            description="Entry deleted",
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
        party_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            party_id=party_id,
            correlation_id=correlation_id,
            description=f"{operation} rejected with {len(issues)} issues",
            details={"operation": operation, "issues": issues},
        )

    @staticmethod
    def ownership_violation(
        entry_id: UUID,
        requested_party_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OWNERSHIP_VIOLATION,
            severity=AuditSeverity.WARNING,
            entity_type="entry",
            entity_id=entry_id,
            party_id=requested_party_id,
            correlation_id=correlation_id,
            description="Entry does not belong to the requested party",
        )

    @staticmethod
    def store_error(
        operation: str,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Store error during {operation}",
            error_code=error_code,
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
