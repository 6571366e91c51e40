"""Services package."""

from party_ledger.services.locks import PartyLockRegistry
from party_ledger.services.storage import (
    AuditStorageInterface,
    EntryStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStorage,
    GoogleSheetsPartyStorage,
    InMemoryAuditStorage,
    InMemoryEntryStorage,
    InMemoryPartyStorage,
    PartyStorageInterface,
)

__all__ = [
    # Concurrency
    "PartyLockRegistry",
    # Storage services
    "AuditStorageInterface",
    "EntryStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStorage",
    "GoogleSheetsPartyStorage",
    "InMemoryAuditStorage",
    "InMemoryEntryStorage",
    "InMemoryPartyStorage",
    "PartyStorageInterface",
]
