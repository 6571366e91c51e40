"""
In-Memory Storage Implementation

Used by tests and by single-process deployments that do not need
durability. Follows the same contract as the Google Sheets backend.

Each write swaps whole immutable records in one synchronous step, so an
entry is either fully there or not there at all, even if the awaiting
caller is cancelled.
"""

import asyncio
import itertools
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from party_ledger.models.amount import Amount
from party_ledger.models.audit import AuditEvent
from party_ledger.models.entry import EntryKind, LedgerEntry
from party_ledger.models.party import Party, utc_now
from party_ledger.services.storage.interface import (
    AuditStorageInterface,
    EntryStorageInterface,
    PartyStorageInterface,
    check_entry_owner,
    duplicate_contact,
    party_not_found,
)


Clock = Callable[[], datetime]


class InMemoryPartyStorage(PartyStorageInterface):
    """
    Dict-backed party store with a unique index on contact number.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._parties: dict[UUID, Party] = {}
        self._numbers: dict[str, UUID] = {}
        self._write_lock = asyncio.Lock()
        self._clock = clock or utc_now

    async def create_party(self, party: Party) -> Party:
        async with self._write_lock:
            if party.number in self._numbers:
                raise duplicate_contact(party.number)
            self._parties[party.id] = party
            self._numbers[party.number] = party.id
            return party

    async def get_party(self, party_id: UUID) -> Party:
        party = self._parties.get(party_id)
        if party is None:
            raise party_not_found(party_id)
        return party

    async def update_party(self, party_id: UUID, changes: dict[str, str]) -> Party:
        async with self._write_lock:
            party = self._parties.get(party_id)
            if party is None:
                raise party_not_found(party_id)

            new_number = changes.get("number", party.number)
            owner = self._numbers.get(new_number)
            if owner is not None and owner != party_id:
                raise duplicate_contact(new_number)

            updated = party.model_copy(
                update={**changes, "updated_at": self._clock()}
            )
            self._parties[party_id] = updated
            if new_number != party.number:
                del self._numbers[party.number]
                self._numbers[new_number] = party_id
            return updated

    async def delete_party(self, party_id: UUID) -> None:
        async with self._write_lock:
            party = self._parties.pop(party_id, None)
            if party is None:
                raise party_not_found(party_id)
            self._numbers.pop(party.number, None)

    async def list_parties(self) -> list[Party]:
        return list(self._parties.values())

    async def party_exists(self, party_id: UUID) -> bool:
        return party_id in self._parties


class InMemoryEntryStorage(EntryStorageInterface):
    """
    Dict-backed entry store.

    The sequence counter is global to the store, so it orders entries of
    one party as well as across parties.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._entries: dict[UUID, LedgerEntry] = {}
        self._sequence = itertools.count(1)
        self._clock = clock or utc_now

    async def add_entry(
        self,
        party_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        now = self._clock()
        entry = LedgerEntry(
            party_id=party_id,
            kind=kind,
            amount=amount,
            description=description,
            created_at=now,
            updated_at=now,
            sequence=next(self._sequence),
        )
        self._entries[entry.id] = entry
        return entry

    async def get_entry(self, party_id: UUID, entry_id: UUID) -> LedgerEntry:
        return check_entry_owner(self._entries.get(entry_id), party_id, entry_id)

    async def update_entry(
        self,
        party_id: UUID,
        entry_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        entry = check_entry_owner(self._entries.get(entry_id), party_id, entry_id)
        updated = entry.model_copy(update={
            "kind": kind,
            "amount": amount,
            "description": description,
            "updated_at": self._clock(),
        })
        self._entries[entry_id] = updated
        return updated

    async def remove_entry(self, party_id: UUID, entry_id: UUID) -> None:
        check_entry_owner(self._entries.get(entry_id), party_id, entry_id)
        del self._entries[entry_id]

    async def remove_entries_for_party(self, party_id: UUID) -> int:
        doomed = [
            entry_id
            for entry_id, entry in self._entries.items()
            if entry.party_id == party_id
        ]
        for entry_id in doomed:
            del self._entries[entry_id]
        return len(doomed)

    async def list_entries_by_party(self, party_id: UUID) -> list[LedgerEntry]:
        entries = [
            entry for entry in self._entries.values()
            if entry.party_id == party_id
        ]
        entries.sort(key=lambda e: e.sort_key)
        return entries


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_party(
        self,
        party_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.party_id == party_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
