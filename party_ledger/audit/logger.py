"""
Audit Logger

DESIGN DECISION: Every mutation of a party or its ledger is logged, and so
is every rejected request (bad input, wrong owner, store trouble).

The audit logger:
- Always writes a structured local log line
- Persists to audit storage when one is configured
- Never fails the ledger operation if the audit write fails
- Tags every event with the correlation ID of the service call
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from party_ledger.errors import LedgerError
from party_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from party_ledger.services.storage import AuditStorageInterface


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to the structured local log and, if configured,
    to audit storage (the AuditLog worksheet or the in-memory log).
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        enabled: bool = True,
    ):
        """
        Args:
            storage: Storage backend for persistence. If None, only logs locally.
            enabled: When False, events are neither logged nor stored.
        """
        self._storage = storage
        self._enabled = enabled
        self._logger = structlog.get_logger("party_ledger.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage is configured).
        """
        if not self._enabled:
            return True

        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity is AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_party_created(self, party_id: UUID, name: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.party_created(
            party_id=party_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_party_updated(
        self,
        party_id: UUID,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.party_updated(
            party_id=party_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_party_deleted(
        self,
        party_id: UUID,
        entries_removed: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.party_deleted(
            party_id=party_id,
            entries_removed=entries_removed,
            correlation_id=correlation_id,
        ))

    async def log_entry_added(
        self,
        entry_id: UUID,
        party_id: UUID,
        kind: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_added(
            entry_id=entry_id,
            party_id=party_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_entry_updated(
        self,
        entry_id: UUID,
        party_id: UUID,
        previous: dict[str, str],
        current: dict[str, str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_updated(
            entry_id=entry_id,
            party_id=party_id,
            previous=previous,
            current=current,
            correlation_id=correlation_id,
        ))

    async def log_entry_deleted(self, entry_id: UUID, party_id: UUID, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.entry_deleted(
            entry_id=entry_id,
            party_id=party_id,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        operation: str,
        error: LedgerError,
        correlation_id: UUID,
        party_id: Optional[UUID] = None,
    ) -> None:
        """Log a request rejected before reaching the store."""
        issues = [issue.model_dump(mode="json") for issue in error.issues]
        await self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
            party_id=party_id,
        ))

    async def log_ownership_violation(
        self,
        entry_id: UUID,
        requested_party_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.ownership_violation(
            entry_id=entry_id,
            requested_party_id=requested_party_id,
            correlation_id=correlation_id,
        ))

    async def log_store_error(
        self,
        operation: str,
        error: LedgerError,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.store_error(
            operation=operation,
            error_code=error.kind.value,
            error_message=error.message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an unexpected error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    The service makes one per call and passes it to every event it logs.
    """
    return uuid4()
