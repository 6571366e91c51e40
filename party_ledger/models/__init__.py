"""
Data Models Package

This package contains the value types and Pydantic models used by the ledger.
All data flowing through the system must conform to these schemas.
"""

from party_ledger.models.amount import Amount, Money, parse_decimal
from party_ledger.models.party import (
    MAX_PARTY_NAME_LENGTH,
    Party,
    PartyPatch,
)
from party_ledger.models.entry import (
    MAX_DESCRIPTION_LENGTH,
    EntryKind,
    LedgerEntry,
)
from party_ledger.models.ledger import (
    LedgerTotals,
    LedgerView,
    Page,
    RunningBalance,
)
from party_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Money
    "Amount",
    "Money",
    "parse_decimal",
    # Parties
    "MAX_PARTY_NAME_LENGTH",
    "Party",
    "PartyPatch",
    # Entries
    "MAX_DESCRIPTION_LENGTH",
    "EntryKind",
    "LedgerEntry",
    # Ledger views
    "LedgerTotals",
    "LedgerView",
    "Page",
    "RunningBalance",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
