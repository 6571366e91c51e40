"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
An in-memory backend serves tests and single-process use; Google Sheets is
the durable backend. Both honour the same contract.
"""

from party_ledger.services.storage.interface import (
    AuditStorageInterface,
    EntryStorageInterface,
    PartyStorageInterface,
    check_entry_owner,
)
from party_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryEntryStorage,
    InMemoryPartyStorage,
)
from party_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStorage,
    GoogleSheetsPartyStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "EntryStorageInterface",
    "PartyStorageInterface",
    "check_entry_owner",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryEntryStorage",
    "InMemoryPartyStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStorage",
    "GoogleSheetsPartyStorage",
]
