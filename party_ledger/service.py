"""
Ledger Service

This module ties together the stores, validation, the ledger engine and
audit logging, and defines the end-to-end flows for:
1. Party management (create, get, update, delete, list)
2. Entry management (add, get, update, delete)
3. Ledger reads (view with running balances, summary, CSV export)

DESIGN DECISION: Every mutating call runs the same steps in the same order:
validate input -> party exists -> entry exists and is owned -> take the
party's lock -> store write -> return the fresh record. A bad request is
therefore rejected before any store access, and the error a caller sees
does not depend on timing.

Each call has a deadline. It bounds the lock wait and every read done
before the write. Once a store write has started it runs to the end: a
caller never gets StoreTimeoutError for a change that was in fact made.

The stores are passed in explicitly. Nothing here opens a connection of
its own.
"""

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar, Union
from uuid import UUID

from party_ledger.audit import AuditLogger, create_correlation_id
from party_ledger.config import get_settings
from party_ledger.errors import (
    EntryNotFoundError,
    EntryNotOwnedError,
    LedgerError,
    NotFoundError,
    PartyNotFoundError,
    StorageError,
    StoreTimeoutError,
    ValidationFailedError,
)
from party_ledger.ledger import aggregate, order_entries, running_balances
from party_ledger.models.entry import LedgerEntry
from party_ledger.models.ledger import LedgerView
from party_ledger.models.party import Party, PartyPatch
from party_ledger.queries import filter_parties, ledger_summary, ledger_view_to_csv
from party_ledger.services.locks import PartyLockRegistry
from party_ledger.services.storage import (
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
from party_ledger.validation import LedgerValidator


T = TypeVar("T")

IdInput = Union[UUID, str]


def _parse_id(value: Any, not_found: Callable[[str], NotFoundError]) -> UUID:
    """
    Turn a UUID or UUID string into a UUID.

    A malformed id can never name a stored record, so it is reported as
    the matching not-found error.
    """
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            pass
    raise not_found(repr(value))


def _party_not_found(party_id: str) -> NotFoundError:
    return NotFoundError(f"Party not found: {party_id}", details={"party_id": party_id})


def _ledger_party_not_found(party_id: str) -> PartyNotFoundError:
    return PartyNotFoundError(f"Party not found: {party_id}", details={"party_id": party_id})


def _entry_not_found(entry_id: str) -> EntryNotFoundError:
    return EntryNotFoundError(f"Entry not found: {entry_id}", details={"entry_id": entry_id})


def _entry_snapshot(entry: LedgerEntry) -> dict[str, str]:
    return {
        "kind": entry.kind.value,
        "amount": entry.amount.format(),
        "description": entry.description,
    }


class Deadline:
    """
    The time left for one service call.

    `bound()` limits a read and `hold()` limits a lock wait. Store writes
    are awaited without it.
    """

    def __init__(self, operation: str, seconds: float):
        self.operation = operation
        self.seconds = seconds
        self._expires_at = asyncio.get_running_loop().time() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - asyncio.get_running_loop().time())

    def expired(self) -> StoreTimeoutError:
        return StoreTimeoutError(
            f"{self.operation} did not finish within {self.seconds} seconds",
            details={"operation": self.operation, "timeout": self.seconds},
        )

    async def bound(self, awaitable: Awaitable[T]) -> T:
        """
        Raises:
            StoreTimeoutError: If the awaitable is still pending at the deadline
        """
        try:
            return await asyncio.wait_for(awaitable, self.remaining())
        except asyncio.TimeoutError:
            raise self.expired() from None

    def hold(self, locks: PartyLockRegistry, party_id: UUID):
        return locks.hold(party_id, timeout=self.remaining())


class LedgerService:
    """
    Public entry point of the ledger core.

    Every method accepts an optional `timeout` in seconds. The lock wait
    and the reads before a write must fit inside it or StoreTimeoutError
    is raised and nothing is written.
    """

    def __init__(
        self,
        party_storage: PartyStorageInterface,
        entry_storage: EntryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        lock_registry: Optional[PartyLockRegistry] = None,
        validator: Optional[LedgerValidator] = None,
        default_timeout: Optional[float] = None,
        currency_label: Optional[str] = None,
    ):
        self._parties = party_storage
        self._entries = entry_storage
        self._audit_logger = audit_logger or AuditLogger()
        self._locks = lock_registry or PartyLockRegistry()
        self._validator = validator or LedgerValidator()

        if default_timeout is None or currency_label is None:
            ledger_settings = get_settings().ledger
            default_timeout = default_timeout or ledger_settings.store_timeout_seconds
            currency_label = currency_label or ledger_settings.currency_label
        self._default_timeout = default_timeout
        self.currency_label = currency_label

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    # =========================================================================
    # Plumbing
    # =========================================================================

    async def _run(
        self,
        operation: str,
        work: Callable[[Deadline], Awaitable[T]],
        timeout: Optional[float],
        correlation_id: UUID,
        party_id: Optional[UUID] = None,
    ) -> T:
        """
        Run one service call with its deadline and audit its failures.
        """
        deadline = Deadline(
            operation, timeout if timeout is not None else self._default_timeout,
        )
        try:
            return await work(deadline)
        except ValidationFailedError as e:
            await self._audit_logger.log_validation_failed(
                operation, e, correlation_id, party_id=party_id,
            )
            raise
        except EntryNotOwnedError as e:
            await self._audit_logger.log_ownership_violation(
                entry_id=UUID(e.details["entry_id"]),
                requested_party_id=UUID(e.details["party_id"]),
                correlation_id=correlation_id,
            )
            raise
        except StorageError as e:
            await self._audit_logger.log_store_error(operation, e, correlation_id)
            raise
        except LedgerError:
            raise
        except Exception as e:
            await self._audit_logger.log_error(
                type(e).__name__,
                str(e),
                details={"operation": operation},
                correlation_id=correlation_id,
            )
            raise

    async def _require_party(self, party_id: UUID, deadline: Deadline) -> Party:
        """Load the party an entry operation targets."""
        try:
            return await deadline.bound(self._parties.get_party(party_id))
        except NotFoundError as e:
            raise PartyNotFoundError(e.message, details=e.details) from None

    async def _require_party_locked(self, party_id: UUID, deadline: Deadline) -> None:
        """Re-check existence once the party's lock is held."""
        if not await deadline.bound(self._parties.party_exists(party_id)):
            raise _ledger_party_not_found(str(party_id))

    # =========================================================================
    # Parties
    # =========================================================================

    async def create_party(
        self,
        name: str,
        number: str,
        address: str,
        timeout: Optional[float] = None,
    ) -> Party:
        """
        Create a party.

        Raises:
            InvalidFieldError: Listing every bad field
            DuplicateContactError: If the number is already in use
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> Party:
            fields = self._validator.validate_new_party(name, number, address)
            party = await self._parties.create_party(Party(**fields))
            await self._audit_logger.log_party_created(party.id, party.name, correlation_id)
            return party

        return await self._run("create_party", work, timeout, correlation_id)

    async def get_party(self, party_id: IdInput, timeout: Optional[float] = None) -> Party:
        """
        Raises:
            NotFoundError: If no such party exists
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> Party:
            pid = _parse_id(party_id, _party_not_found)
            return await deadline.bound(self._parties.get_party(pid))

        return await self._run("get_party", work, timeout, correlation_id)

    async def update_party(
        self,
        party_id: IdInput,
        patch: Union[PartyPatch, Mapping[str, Any]],
        timeout: Optional[float] = None,
    ) -> Party:
        """
        Apply a partial update to name, number and/or address.

        An empty patch changes nothing and returns the stored party.

        Raises:
            InvalidFieldError: For bad values or unknown fields
            NotFoundError: If no such party exists
            DuplicateContactError: If the new number belongs to another party
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> Party:
            changes = self._validator.validate_party_patch(patch)
            pid = _parse_id(party_id, _party_not_found)
            if not changes:
                return await deadline.bound(self._parties.get_party(pid))

            async with deadline.hold(self._locks, pid):
                party = await self._parties.update_party(pid, changes)

            await self._audit_logger.log_party_updated(
                party.id, sorted(changes), correlation_id,
            )
            return party

        return await self._run("update_party", work, timeout, correlation_id)

    async def delete_party(self, party_id: IdInput, timeout: Optional[float] = None) -> int:
        """
        Delete a party and every entry it owns.

        Entries go first. If the party row then fails to delete, the party
        is still there with an empty ledger and calling again finishes the
        job.

        Returns:
            How many entries were removed with it

        Raises:
            NotFoundError: If no such party exists
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> int:
            pid = _parse_id(party_id, _party_not_found)
            await deadline.bound(self._parties.get_party(pid))

            async with deadline.hold(self._locks, pid):
                await deadline.bound(self._parties.get_party(pid))
                removed = await self._entries.remove_entries_for_party(pid)
                await self._parties.delete_party(pid)

            await self._audit_logger.log_party_deleted(pid, removed, correlation_id)
            return removed

        return await self._run("delete_party", work, timeout, correlation_id)

    async def list_parties(
        self,
        filter_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> list[Party]:
        """All parties in creation order, optionally narrowed by search text."""
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> list[Party]:
            parties = await deadline.bound(self._parties.list_parties())
            return filter_parties(parties, filter_text)

        return await self._run("list_parties", work, timeout, correlation_id)

    # =========================================================================
    # Entries
    # =========================================================================

    async def add_entry(
        self,
        party_id: IdInput,
        kind: Any,
        amount: Any,
        description: Any,
        timeout: Optional[float] = None,
    ) -> LedgerEntry:
        """
        Append a credit or debit to a party's ledger.

        Raises:
            InvalidKindError, InvalidAmountError, InvalidDescriptionError:
                Before any store access
            PartyNotFoundError: If the party does not exist
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> LedgerEntry:
            entry_input = self._validator.validate_entry(kind, amount, description)
            pid = _parse_id(party_id, _ledger_party_not_found)
            await self._require_party(pid, deadline)

            async with deadline.hold(self._locks, pid):
                await self._require_party_locked(pid, deadline)
                entry = await self._entries.add_entry(
                    pid,
                    entry_input.kind,
                    entry_input.amount,
                    entry_input.description,
                )

            await self._audit_logger.log_entry_added(
                entry.id, pid, entry.kind.value, entry.amount.format(), correlation_id,
            )
            return entry

        return await self._run("add_entry", work, timeout, correlation_id)

    async def get_entry(
        self,
        party_id: IdInput,
        entry_id: IdInput,
        timeout: Optional[float] = None,
    ) -> LedgerEntry:
        """
        Raises:
            PartyNotFoundError: If the party does not exist
            EntryNotFoundError: If the entry does not exist
            EntryNotOwnedError: If the entry belongs to another party
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> LedgerEntry:
            pid = _parse_id(party_id, _ledger_party_not_found)
            await self._require_party(pid, deadline)
            eid = _parse_id(entry_id, _entry_not_found)
            return await deadline.bound(self._entries.get_entry(pid, eid))

        return await self._run("get_entry", work, timeout, correlation_id)

    async def update_entry(
        self,
        party_id: IdInput,
        entry_id: IdInput,
        kind: Any,
        amount: Any,
        description: Any,
        timeout: Optional[float] = None,
    ) -> LedgerEntry:
        """
        Replace kind, amount and description of an entry.

        The entry keeps its place in the ledger; every later running balance
        changes on the next read.

        Raises:
            InvalidKindError, InvalidAmountError, InvalidDescriptionError:
                Before any store access
            PartyNotFoundError: If the party does not exist
            EntryNotFoundError: If the entry does not exist
            EntryNotOwnedError: If the entry belongs to another party
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> LedgerEntry:
            entry_input = self._validator.validate_entry(kind, amount, description)
            pid = _parse_id(party_id, _ledger_party_not_found)
            await self._require_party(pid, deadline)
            eid = _parse_id(entry_id, _entry_not_found)
            await deadline.bound(self._entries.get_entry(pid, eid))

            async with deadline.hold(self._locks, pid):
                await self._require_party_locked(pid, deadline)
                previous = await deadline.bound(self._entries.get_entry(pid, eid))
                entry = await self._entries.update_entry(
                    pid,
                    eid,
                    entry_input.kind,
                    entry_input.amount,
                    entry_input.description,
                )

            await self._audit_logger.log_entry_updated(
                eid, pid, _entry_snapshot(previous), _entry_snapshot(entry), correlation_id,
            )
            return entry

        return await self._run("update_entry", work, timeout, correlation_id)

    async def delete_entry(
        self,
        party_id: IdInput,
        entry_id: IdInput,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Remove one entry. Later running balances change on the next read.

        Raises:
            PartyNotFoundError: If the party does not exist
            EntryNotFoundError: If the entry does not exist
            EntryNotOwnedError: If the entry belongs to another party
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> None:
            pid = _parse_id(party_id, _ledger_party_not_found)
            await self._require_party(pid, deadline)
            eid = _parse_id(entry_id, _entry_not_found)
            await deadline.bound(self._entries.get_entry(pid, eid))

            async with deadline.hold(self._locks, pid):
                await self._require_party_locked(pid, deadline)
                await self._entries.remove_entry(pid, eid)

            await self._audit_logger.log_entry_deleted(eid, pid, correlation_id)

        await self._run("delete_entry", work, timeout, correlation_id)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_ledger_view(
        self,
        party_id: IdInput,
        timeout: Optional[float] = None,
    ) -> LedgerView:
        """
        A party with all its entries, running balances and totals.

        Balances are replayed from the stored entries on every call.

        Raises:
            PartyNotFoundError: If the party does not exist
        """
        correlation_id = create_correlation_id()

        async def work(deadline: Deadline) -> LedgerView:
            pid = _parse_id(party_id, _ledger_party_not_found)
            party = await self._require_party(pid, deadline)
            stored = await deadline.bound(self._entries.list_entries_by_party(pid))
            entries = order_entries(stored)
            totals = aggregate(entries)
            return LedgerView(
                party=party,
                entries=running_balances(entries),
                total_credit=totals.total_credit,
                total_debit=totals.total_debit,
                net_balance=totals.net_balance,
            )

        return await self._run("get_ledger_view", work, timeout, correlation_id)

    async def get_ledger_summary(
        self,
        party_id: IdInput,
        timeout: Optional[float] = None,
    ) -> dict[str, str]:
        """
        Display totals for a party, labelled with the configured currency.

        Raises:
            PartyNotFoundError: If the party does not exist
        """
        view = await self.get_ledger_view(party_id, timeout=timeout)
        return ledger_summary(view, self.currency_label)

    async def export_ledger_csv(
        self,
        party_id: IdInput,
        timeout: Optional[float] = None,
    ) -> str:
        """
        The party's ledger as CSV text.

        Raises:
            PartyNotFoundError: If the party does not exist
        """
        view = await self.get_ledger_view(party_id, timeout=timeout)
        return ledger_view_to_csv(view)


def create_ledger_service(backend: Optional[str] = None) -> LedgerService:
    """
    Factory function to build the service with its stores.

    Args:
        backend: "memory" or "google_sheets". Defaults to
                 LEDGER_STORAGE_BACKEND.

    The Google Sheets client connects here, once, so a bad credential or
    spreadsheet id fails at startup and not on the first ledger call.

    Raises:
        StoreUnavailableError: If Google Sheets cannot be reached
        ValueError: For an unknown backend name
    """
    settings = get_settings()
    ledger_settings = settings.ledger
    backend = backend or ledger_settings.storage_backend

    if backend == "memory":
        party_storage = InMemoryPartyStorage()
        entry_storage = InMemoryEntryStorage()
        audit_storage = InMemoryAuditStorage()
    elif backend == "google_sheets":
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        sheets_client.connect()
        party_storage = GoogleSheetsPartyStorage(sheets_client)
        entry_storage = GoogleSheetsEntryStorage(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    audit_logger = AuditLogger(audit_storage, enabled=ledger_settings.audit_enabled)

    return LedgerService(
        party_storage,
        entry_storage,
        audit_logger=audit_logger,
        default_timeout=ledger_settings.store_timeout_seconds,
        currency_label=ledger_settings.currency_label,
    )
