"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a durable backend because:
1. Non-technical users can view their ledgers directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (hundreds to low thousands of
  entries per party is fine)
- No transactions: every read-check-write runs under a store-level lock
  and each record is one row written by a single API call
- Limited query capabilities (we filter in Python)

gspread is synchronous; calls run in a worker thread. A read may be
abandoned when the caller gives up. A write is always awaited to the end,
so the store lock is never released while a row is still being written.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from party_ledger.config import GoogleSheetsSettings, get_settings
from party_ledger.errors import LedgerError, StoreUnavailableError
from party_ledger.models.amount import Amount
from party_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from party_ledger.models.entry import EntryKind, LedgerEntry
from party_ledger.models.party import Party, utc_now
from party_ledger.services.storage.interface import (
    AuditStorageInterface,
    EntryStorageInterface,
    PartyStorageInterface,
    check_entry_owner,
    duplicate_contact,
    entry_not_found,
    party_not_found,
)


logger = structlog.get_logger(__name__)


# Column mappings for Parties sheet
PARTY_COLUMNS = [
    "id",
    "number",
    "name",
    "address",
    "created_at",
    "updated_at",
]

# Column mappings for Entries sheet
ENTRY_COLUMNS = [
    "id",
    "party_id",
    "sequence",
    "kind",
    "amount",
    "description",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "party_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Read a cell, treating missing trailing cells as empty."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _row_range(row_number: int, width: int) -> str:
    return f"{rowcol_to_a1(row_number, 1)}:{rowcol_to_a1(row_number, width)}"


async def _run_sheets_call(func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking gspread call off the event loop."""
    try:
        return await asyncio.to_thread(func, *args)
    except LedgerError:
        raise
    except gspread.exceptions.GSpreadException as e:
        raise StoreUnavailableError(f"Google Sheets request failed: {e}") from e


async def _run_sheets_write(func: Callable[..., Any], *args: Any) -> Any:
    """
    Run a blocking gspread write to completion.

    A worker thread cannot be stopped. If the awaiting task is cancelled,
    it still waits for the thread to return before the cancellation
    propagates, so any lock held around this call stays held until the
    sheet has actually been written.
    """
    task = asyncio.ensure_future(_run_sheets_call(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        while not task.done():
            try:
                await asyncio.wait([task])
            except asyncio.CancelledError:
                continue
        if not task.cancelled() and task.exception() is not None:
            logger.warning("sheets_write_failed_after_cancel", error=str(task.exception()))
        raise


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and hands out worksheets. Built once at process
    start and shared by the stores.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise StoreUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except (ValueError, gspread.exceptions.GSpreadException) as e:
                raise StoreUnavailableError(
                    f"Failed to connect to Google Sheets: {e}"
                ) from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise StoreUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_parties_sheet(self) -> gspread.Worksheet:
        """Get or create the Parties worksheet."""
        return self._get_or_create_sheet(
            self._settings.parties_sheet_name, PARTY_COLUMNS, rows=1000
        )

    def get_entries_sheet(self) -> gspread.Worksheet:
        """Get or create the Entries worksheet."""
        return self._get_or_create_sheet(
            self._settings.entries_sheet_name, ENTRY_COLUMNS, rows=5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsPartyStorage(PartyStorageInterface):
    """
    Google Sheets implementation of party storage.

    One party per row. The contact number check and the write happen while
    holding the store's write lock.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client
        self._write_lock = asyncio.Lock()
        self._clock = clock or utc_now

    def _party_to_row(self, party: Party) -> list:
        """Convert a Party to a spreadsheet row."""
        return [
            str(party.id),
            party.number,
            party.name,
            party.address,
            party.created_at.isoformat(),
            party.updated_at.isoformat(),
        ]

    def _row_to_party(self, row: list) -> Party:
        """Convert a spreadsheet row to a Party."""
        return Party(
            id=UUID(_safe_get(row, 0)),
            number=_safe_get(row, 1),
            name=_safe_get(row, 2),
            address=_safe_get(row, 3),
            created_at=datetime.fromisoformat(_safe_get(row, 4)),
            updated_at=datetime.fromisoformat(_safe_get(row, 5)),
        )

    def _data_rows(self, sheet: gspread.Worksheet) -> list[tuple[int, list]]:
        """(sheet row number, row) for every non-empty data row."""
        all_rows = sheet.get_all_values()
        # Start from 2 (row 1 is header)
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)
            if row and row[0]
        ]

    def _create_sync(self, party: Party) -> Party:
        sheet = self._client.get_parties_sheet()
        for _, row in self._data_rows(sheet):
            if _safe_get(row, 1) == party.number:
                raise duplicate_contact(party.number)
        sheet.append_row(self._party_to_row(party), value_input_option="RAW")
        return party

    def _get_sync(self, party_id: UUID) -> Party:
        sheet = self._client.get_parties_sheet()
        for _, row in self._data_rows(sheet):
            if row[0] == str(party_id):
                return self._row_to_party(row)
        raise party_not_found(party_id)

    def _update_sync(self, party_id: UUID, changes: dict[str, str]) -> Party:
        sheet = self._client.get_parties_sheet()
        rows = self._data_rows(sheet)

        target = None
        for idx, row in rows:
            if row[0] == str(party_id):
                target = (idx, self._row_to_party(row))
                break
        if target is None:
            raise party_not_found(party_id)

        row_number, party = target
        new_number = changes.get("number", party.number)
        for _, row in rows:
            if row[0] != str(party_id) and _safe_get(row, 1) == new_number:
                raise duplicate_contact(new_number)

        updated = party.model_copy(update={**changes, "updated_at": self._clock()})
        sheet.update(
            range_name=_row_range(row_number, len(PARTY_COLUMNS)),
            values=[self._party_to_row(updated)],
        )
        return updated

    def _delete_sync(self, party_id: UUID) -> None:
        sheet = self._client.get_parties_sheet()
        for idx, row in self._data_rows(sheet):
            if row[0] == str(party_id):
                sheet.delete_rows(idx)
                return
        raise party_not_found(party_id)

    def _list_sync(self) -> list[Party]:
        sheet = self._client.get_parties_sheet()
        parties = []
        for idx, row in self._data_rows(sheet):
            try:
                parties.append(self._row_to_party(row))
            except ValueError as e:
                logger.warning("malformed_party_row", row_number=idx, error=str(e))
        return parties

    async def create_party(self, party: Party) -> Party:
        async with self._write_lock:
            return await _run_sheets_write(self._create_sync, party)

    async def get_party(self, party_id: UUID) -> Party:
        return await _run_sheets_call(self._get_sync, party_id)

    async def update_party(self, party_id: UUID, changes: dict[str, str]) -> Party:
        async with self._write_lock:
            return await _run_sheets_write(self._update_sync, party_id, changes)

    async def delete_party(self, party_id: UUID) -> None:
        async with self._write_lock:
            await _run_sheets_write(self._delete_sync, party_id)

    async def list_parties(self) -> list[Party]:
        return await _run_sheets_call(self._list_sync)


class GoogleSheetsEntryStorage(EntryStorageInterface):
    """
    Google Sheets implementation of entry storage.

    One entry per row. Updates rewrite the whole row in one request.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client
        self._write_lock = asyncio.Lock()
        self._clock = clock or utc_now

    def _entry_to_row(self, entry: LedgerEntry) -> list:
        """Convert a LedgerEntry to a spreadsheet row."""
        return [
            str(entry.id),
            str(entry.party_id),
            str(entry.sequence),
            entry.kind.value,
            entry.amount.format(),
            entry.description,
            entry.created_at.isoformat(),
            entry.updated_at.isoformat(),
        ]

    def _row_to_entry(self, row: list) -> LedgerEntry:
        """Convert a spreadsheet row to a LedgerEntry."""
        return LedgerEntry(
            id=UUID(_safe_get(row, 0)),
            party_id=UUID(_safe_get(row, 1)),
            sequence=int(_safe_get(row, 2, "0")),
            kind=EntryKind(_safe_get(row, 3)),
            amount=Amount.of(_safe_get(row, 4)),
            description=_safe_get(row, 5),
            created_at=datetime.fromisoformat(_safe_get(row, 6)),
            updated_at=datetime.fromisoformat(_safe_get(row, 7)),
        )

    def _data_rows(self, sheet: gspread.Worksheet) -> list[tuple[int, list]]:
        all_rows = sheet.get_all_values()
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)
            if row and row[0]
        ]

    def _find(
        self,
        sheet: gspread.Worksheet,
        party_id: UUID,
        entry_id: UUID,
    ) -> tuple[int, LedgerEntry]:
        for idx, row in self._data_rows(sheet):
            if row[0] == str(entry_id):
                entry = check_entry_owner(self._row_to_entry(row), party_id, entry_id)
                return idx, entry
        raise entry_not_found(party_id, entry_id)

    def _add_sync(
        self,
        party_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        sheet = self._client.get_entries_sheet()
        last_sequence = 0
        for _, row in self._data_rows(sheet):
            try:
                last_sequence = max(last_sequence, int(_safe_get(row, 2, "0")))
            except ValueError:
                continue

        now = self._clock()
        entry = LedgerEntry(
            party_id=party_id,
            kind=kind,
            amount=amount,
            description=description,
            created_at=now,
            updated_at=now,
            sequence=last_sequence + 1,
        )
        sheet.append_row(self._entry_to_row(entry), value_input_option="RAW")
        return entry

    def _get_sync(self, party_id: UUID, entry_id: UUID) -> LedgerEntry:
        sheet = self._client.get_entries_sheet()
        _, entry = self._find(sheet, party_id, entry_id)
        return entry

    def _update_sync(
        self,
        party_id: UUID,
        entry_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        sheet = self._client.get_entries_sheet()
        row_number, entry = self._find(sheet, party_id, entry_id)
        updated = entry.model_copy(update={
            "kind": kind,
            "amount": amount,
            "description": description,
            "updated_at": self._clock(),
        })
        sheet.update(
            range_name=_row_range(row_number, len(ENTRY_COLUMNS)),
            values=[self._entry_to_row(updated)],
        )
        return updated

    def _remove_sync(self, party_id: UUID, entry_id: UUID) -> None:
        sheet = self._client.get_entries_sheet()
        row_number, _ = self._find(sheet, party_id, entry_id)
        sheet.delete_rows(row_number)

    def _remove_for_party_sync(self, party_id: UUID) -> int:
        sheet = self._client.get_entries_sheet()
        row_numbers = [
            idx for idx, row in self._data_rows(sheet)
            if _safe_get(row, 1) == str(party_id)
        ]
        # Bottom-up so earlier deletions don't shift later row numbers
        for idx in reversed(row_numbers):
            sheet.delete_rows(idx)
        return len(row_numbers)

    def _list_sync(self, party_id: UUID) -> list[LedgerEntry]:
        sheet = self._client.get_entries_sheet()
        entries = []
        for idx, row in self._data_rows(sheet):
            if _safe_get(row, 1) != str(party_id):
                continue
            try:
                entries.append(self._row_to_entry(row))
            except (ValueError, LedgerError) as e:
                logger.warning("malformed_entry_row", row_number=idx, error=str(e))
        entries.sort(key=lambda e: e.sort_key)
        return entries

    async def add_entry(
        self,
        party_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        async with self._write_lock:
            return await _run_sheets_write(
                self._add_sync, party_id, kind, amount, description
            )

    async def get_entry(self, party_id: UUID, entry_id: UUID) -> LedgerEntry:
        return await _run_sheets_call(self._get_sync, party_id, entry_id)

    async def update_entry(
        self,
        party_id: UUID,
        entry_id: UUID,
        kind: EntryKind,
        amount: Amount,
        description: str,
    ) -> LedgerEntry:
        async with self._write_lock:
            return await _run_sheets_write(
                self._update_sync, party_id, entry_id, kind, amount, description
            )

    async def remove_entry(self, party_id: UUID, entry_id: UUID) -> None:
        async with self._write_lock:
            await _run_sheets_write(self._remove_sync, party_id, entry_id)

    async def remove_entries_for_party(self, party_id: UUID) -> int:
        async with self._write_lock:
            return await _run_sheets_write(self._remove_for_party_sync, party_id)

    async def list_entries_by_party(self, party_id: UUID) -> list[LedgerEntry]:
        return await _run_sheets_call(self._list_sync, party_id)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            party_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            correlation_id=UUID(_safe_get(row, 7)) if _safe_get(row, 7) else None,
            description=_safe_get(row, 8),
            details=json.loads(_safe_get(row, 9)) if _safe_get(row, 9) else {},
            error_code=_safe_get(row, 10) or None,
            error_message=_safe_get(row, 11) or None,
        )

    def _append_sync(self, event: AuditEvent) -> bool:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    def _events_sync(self, predicate: Callable[[list], bool]) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("malformed_audit_row", error=str(e))
        events.sort(key=lambda e: e.timestamp)
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            return await _run_sheets_call(self._append_sync, event)
        except StoreUnavailableError as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return await _run_sheets_call(
            self._events_sync,
            lambda row: _safe_get(row, 7) == str(correlation_id),
        )

    async def get_events_by_party(
        self,
        party_id: UUID,
    ) -> list[AuditEvent]:
        return await _run_sheets_call(
            self._events_sync,
            lambda row: _safe_get(row, 6) == str(party_id),
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await _run_sheets_call(self._events_sync, lambda row: True)
        events.reverse()
        return events[:limit]
