"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs.

Store contract shared by all implementations:
- Contact number uniqueness is enforced inside the write path, not by the
  caller reading first.
- Every write replaces whole records; a reader never sees half an entry.
- Entries come back ordered by (created_at, sequence).
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from party_ledger.errors import (
    DuplicateContactError,
    EntryNotFoundError,
    EntryNotOwnedError,
    NotFoundError,
)
from party_ledger.models.amount import Amount
from party_ledger.models.audit import AuditEvent
from party_ledger.models.entry import EntryKind, LedgerEntry
from party_ledger.models.party import Party


def party_not_found(party_id: UUID) -> NotFoundError:
    return NotFoundError(
        f"Party not found: {party_id}",
        details={"party_id": str(party_id)},
    )


def duplicate_contact(number: str) -> DuplicateContactError:
    return DuplicateContactError(
        f"Contact number already in use: {number}",
        fields=["number"],
        details={"number": number},
    )


def entry_not_found(party_id: UUID, entry_id: UUID) -> EntryNotFoundError:
    return EntryNotFoundError(
        f"Entry not found: {entry_id}",
        details={"entry_id": str(entry_id), "party_id": str(party_id)},
    )


def check_entry_owner(
    entry: Optional[LedgerEntry],
    party_id: UUID,
    entry_id: UUID,
) -> LedgerEntry:
    """
    Return the entry if it exists and belongs to `party_id`.

    Raises:
        EntryNotFoundError: If the entry does not exist
        EntryNotOwnedError: If it belongs to another party
    """
    if entry is None:
        raise entry_not_found(party_id, entry_id)
    if entry.party_id != party_id:
        raise EntryNotOwnedError(
            f"Entry {entry_id} does not belong to party {party_id}",
            details={"entry_id": str(entry_id), "party_id": str(party_id)},
        )
    return entry


class PartyStorageInterface(ABC):
    """
    Abstract interface for party storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def create_party(self, party: Party) -> Party:
        """
        Persist a new party.

        Raises:
            DuplicateContactError: If another party already has this number
            StorageError: If the write fails
        """

    @abstractmethod
    async def get_party(self, party_id: UUID) -> Party:
        """
        Retrieve a party by its ID.

        Raises:
            NotFoundError: If no such party exists
        """

    @abstractmethod
    async def update_party(self, party_id: UUID, changes: dict[str, str]) -> Party:
        """
        Apply name/number/address changes to a party.

        Raises:
            NotFoundError: If no such party exists
            DuplicateContactError: If the new number belongs to another party
        """

    @abstractmethod
    async def delete_party(self, party_id: UUID) -> None:
        """
        Delete a party by ID.

        Raises:
            NotFoundError: If no such party exists
        """

    @abstractmethod
    async def list_parties(self) -> list[Party]:
        """All parties in creation order."""

    async def party_exists(self, party_id: UUID) -> bool:
        """Check whether a party exists."""
        parties = await self.list_parties()
        return any(party.id == party_id for party in parties)


class EntryStorageInterface(ABC):
    """
    Abstract interface for ledger entry storage.

    Every operation is scoped by party. An entry that exists under a
    different party raises EntryNotOwnedError, never EntryNotFoundError.
    """

    @abstractmethod
    async def add_entry(
        self,
        party_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        """
        Append a new entry to a party's ledger.

        The store assigns id, timestamps and the insertion sequence.
        """

    @abstractmethod
    async def get_entry(self, party_id: UUID, entry_id: UUID) -> LedgerEntry:
        """
        Retrieve one entry of a party.

        Raises:
            EntryNotFoundError: If the entry does not exist
            EntryNotOwnedError: If the entry belongs to another party
        """

    @abstractmethod
    async def update_entry(
        self,
        party_id: UUID,
        entry_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        """
        Replace kind, amount and description of an entry.

        created_at and sequence are kept so the entry keeps its position.

        Raises:
            EntryNotFoundError: If the entry does not exist
            EntryNotOwnedError: If the entry belongs to another party
        """

    @abstractmethod
    async def remove_entry(self, party_id: UUID, entry_id: UUID) -> None:
        """
        Delete one entry.

        Raises:
            EntryNotFoundError: If the entry does not exist
            EntryNotOwnedError: If the entry belongs to another party
        """

    @abstractmethod
    async def remove_entries_for_party(self, party_id: UUID) -> int:
        """Delete every entry of a party. Returns how many were removed."""

    @abstractmethod
    async def list_entries_by_party(self, party_id: UUID) -> list[LedgerEntry]:
        """A party's entries ordered by creation time, then sequence."""


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events for one service call, in chronological order."""

    @abstractmethod
    async def get_events_by_party(
        self,
        party_id: UUID,
    ) -> list[AuditEvent]:
        """All events touching one party, in chronological order."""

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
