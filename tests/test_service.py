"""
Tests for LedgerService flows.

Covers the ledger properties end to end over the in-memory stores:
worked example balances, edit and delete recomputation, error precedence,
ownership isolation, cascade delete, concurrency and deadlines.
"""

import asyncio
from uuid import uuid4

import pytest

from party_ledger.audit import AuditLogger
from party_ledger.errors import (
    DuplicateContactError,
    EntryNotFoundError,
    EntryNotOwnedError,
    ErrorKind,
    InvalidAmountError,
    InvalidDescriptionError,
    InvalidFieldError,
    InvalidKindError,
    NotFoundError,
    PartyNotFoundError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from party_ledger.models import AuditEventType, EntryKind, Money, PartyPatch
from party_ledger.service import LedgerService, create_ledger_service
from party_ledger.services.storage import InMemoryEntryStorage, InMemoryPartyStorage


async def make_party(service, name="Ali Traders", number="0300-1111111", address="Lahore"):
    return await service.create_party(name, number, address)


async def balances(service, party_id):
    view = await service.get_ledger_view(party_id)
    return [row.balance_after.format() for row in view.entries]


class SpyPartyStorage(InMemoryPartyStorage):
    """Counts store calls so tests can prove validation runs first."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def get_party(self, party_id):
        self.calls += 1
        return await super().get_party(party_id)

    async def party_exists(self, party_id):
        self.calls += 1
        return await super().party_exists(party_id)


class SlowEntryStorage(InMemoryEntryStorage):
    """Entry store whose add_entry takes a while."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    async def add_entry(self, party_id, kind, amount, description):
        await asyncio.sleep(self.delay)
        return await super().add_entry(party_id, kind, amount, description)


class SlowPartyStorage(InMemoryPartyStorage):
    """Party store whose existence check takes a while."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    async def party_exists(self, party_id):
        await asyncio.sleep(self.delay)
        return await super().party_exists(party_id)


class FlakyPartyStorage(InMemoryPartyStorage):
    """Party store whose first delete fails."""

    def __init__(self):
        super().__init__()
        self.failures_left = 1

    async def delete_party(self, party_id):
        if self.failures_left:
            self.failures_left -= 1
            raise StoreUnavailableError("backend down")
        await super().delete_party(party_id)


class FailingEntryStorage(InMemoryEntryStorage):
    """Entry store whose backend is down."""

    async def list_entries_by_party(self, party_id):
        raise StoreUnavailableError("backend down")


class BrokenEntryStorage(InMemoryEntryStorage):
    """Entry store with a bug of its own."""

    async def list_entries_by_party(self, party_id):
        raise RuntimeError("row decoder crashed")


class TestPartyFlows:
    """Tests for party create, read, update, delete and list."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, service):
        """Test a new party can be fetched by UUID and by string id."""
        party = await make_party(service, name="  Ali  ")
        assert party.name == "Ali"
        assert await service.get_party(party.id) == party
        assert await service.get_party(str(party.id)) == party

    @pytest.mark.asyncio
    async def test_create_reports_every_bad_field(self, service):
        """Test InvalidFieldError lists all bad fields."""
        with pytest.raises(InvalidFieldError) as exc:
            await service.create_party("", "", "")
        assert exc.value.fields == ["name", "number", "address"]

    @pytest.mark.asyncio
    async def test_duplicate_contact(self, service):
        """Test two parties cannot share a number."""
        await make_party(service)
        with pytest.raises(DuplicateContactError):
            await make_party(service, name="Copy")

    @pytest.mark.asyncio
    async def test_concurrent_creates_same_number(self, service):
        """Test exactly one racing create succeeds."""
        results = await asyncio.gather(
            *[make_party(service, name=f"P{i}") for i in range(5)],
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, DuplicateContactError)]
        assert len(errors) == 4
        assert len(await service.list_parties()) == 1

    @pytest.mark.asyncio
    async def test_update_with_mapping_and_patch(self, service):
        """Test both patch forms apply only the given fields."""
        party = await make_party(service)
        renamed = await service.update_party(party.id, {"name": "Ali & Sons"})
        assert renamed.name == "Ali & Sons"
        assert renamed.number == party.number

        moved = await service.update_party(party.id, PartyPatch(address="Karachi"))
        assert moved.address == "Karachi"
        assert moved.name == "Ali & Sons"

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, service):
        """Test unknown patch keys are InvalidField."""
        party = await make_party(service)
        with pytest.raises(InvalidFieldError):
            await service.update_party(party.id, {"balance": "0"})

    @pytest.mark.asyncio
    async def test_update_missing_party(self, service):
        """Test updating an unknown party is NotFound."""
        with pytest.raises(NotFoundError):
            await service.update_party(uuid4(), {"name": "X"})

    @pytest.mark.asyncio
    async def test_empty_patch_returns_party(self, service):
        """Test an empty patch is a no-op."""
        party = await make_party(service)
        assert await service.update_party(party.id, {}) == party

    @pytest.mark.asyncio
    async def test_update_to_taken_number(self, service):
        """Test update cannot reuse another party's number."""
        await make_party(service, number="111")
        other = await make_party(service, name="B", number="222")
        with pytest.raises(DuplicateContactError):
            await service.update_party(other.id, {"number": "111"})

    @pytest.mark.asyncio
    async def test_list_with_filter(self, service):
        """Test list_parties narrows by name, number or address."""
        await make_party(service, name="Ali", number="1", address="Lahore")
        await make_party(service, name="Bilal", number="2", address="Karachi")
        assert [p.name for p in await service.list_parties("kar")] == ["Bilal"]
        assert len(await service.list_parties()) == 2

    @pytest.mark.asyncio
    async def test_malformed_party_id(self, service):
        """Test a malformed id is simply not found."""
        with pytest.raises(NotFoundError):
            await service.get_party("not-a-uuid")
        with pytest.raises(NotFoundError):
            await service.delete_party(12345)


class TestEntryFlows:
    """Tests for entries and running balances."""

    @pytest.mark.asyncio
    async def test_worked_example(self, service):
        """Test credit 100, debit 30, credit 50 gives 150/30/120."""
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 100, "Goods sold")
        await service.add_entry(party.id, "debit", 30, "Cash received")
        await service.add_entry(party.id, "credit", 50, "More goods")

        view = await service.get_ledger_view(party.id)
        assert view.total_credit == Money.of(150)
        assert view.total_debit == Money.of(30)
        assert view.net_balance == Money.of(120)
        assert [row.balance_after.format() for row in view.entries] == ["100.00", "70.00", "120.00"]

    @pytest.mark.asyncio
    async def test_new_entry_is_last_exactly_once(self, service):
        """Test add then list puts the entry at the tail once."""
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 10, "a")
        entry = await service.add_entry(party.id, "debit", 4, "b")

        ids = [row.entry.id for row in (await service.get_ledger_view(party.id)).entries]
        assert ids[-1] == entry.id
        assert ids.count(entry.id) == 1

    @pytest.mark.asyncio
    async def test_editing_middle_entry_recomputes_later_balances(self, service):
        """Test later balances follow an edit of an earlier entry."""
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 100, "a")
        middle = await service.add_entry(party.id, "debit", 30, "b")
        await service.add_entry(party.id, "credit", 50, "c")

        updated = await service.update_entry(party.id, middle.id, "debit", 60, "b, corrected")
        assert updated.created_at == middle.created_at
        assert await balances(service, party.id) == ["100.00", "40.00", "90.00"]

    @pytest.mark.asyncio
    async def test_deleting_entry_is_as_if_never_added(self, service):
        """Test balances after delete match a ledger without that entry."""
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 100, "a")
        doomed = await service.add_entry(party.id, "debit", 30, "b")
        await service.add_entry(party.id, "credit", 50, "c")

        await service.delete_entry(party.id, doomed.id)

        view = await service.get_ledger_view(party.id)
        assert [row.balance_after.format() for row in view.entries] == ["100.00", "150.00"]
        assert view.net_balance == Money.of(150)

    @pytest.mark.asyncio
    async def test_get_entry(self, service):
        """Test a single entry can be read back by string ids."""
        party = await make_party(service)
        entry = await service.add_entry(party.id, "credit", "12.50", "a")
        fetched = await service.get_entry(str(party.id), str(entry.id))
        assert fetched == entry
        assert fetched.amount.format() == "12.50"

    @pytest.mark.asyncio
    async def test_empty_ledger_view(self, service):
        """Test a party without entries has zero totals."""
        party = await make_party(service)
        view = await service.get_ledger_view(party.id)
        assert view.entry_count == 0
        assert view.net_balance.is_zero

    @pytest.mark.asyncio
    async def test_float_amounts_do_not_drift(self, service):
        """Test ten 0.1 credits sum to exactly 1.00."""
        party = await make_party(service)
        for _ in range(10):
            await service.add_entry(party.id, "credit", 0.1, "dime")
        view = await service.get_ledger_view(party.id)
        assert view.net_balance.format() == "1.00"

    @pytest.mark.asyncio
    async def test_export_csv(self, service):
        """Test CSV export of a party's ledger."""
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 1234.5, "Sale, bulk")
        csv_text = await service.export_ledger_csv(party.id)
        lines = csv_text.splitlines()
        assert lines[0] == "Date,Type,Description,Amount,Balance"
        assert lines[1].endswith(',Credit,"Sale, bulk",1234.50,1234.50')
        assert lines[-1] == "Net Balance,1234.50"

    @pytest.mark.asyncio
    async def test_ledger_summary_uses_currency_label(self, service):
        """Test the summary renders totals with the configured currency."""
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 1500, "Sale")
        await service.add_entry(party.id, "debit", 265.5, "Payment")
        summary = await service.get_ledger_summary(party.id)
        assert summary == {
            "party": "Ali Traders",
            "entries": "2",
            "total_credit": "PKR 1,500.00",
            "total_debit": "PKR 265.50",
            "net_balance": "PKR 1,234.50",
        }

    @pytest.mark.asyncio
    async def test_ledger_summary_missing_party(self, service):
        """Test a summary of an unknown party is PartyNotFound."""
        with pytest.raises(PartyNotFoundError):
            await service.get_ledger_summary(uuid4())


class TestValidationPrecedence:
    """Tests for rejection rules and the order checks run in."""

    @pytest.mark.asyncio
    async def test_refund_is_invalid_kind(self, service):
        """Test 'refund' is InvalidKind."""
        party = await make_party(service)
        with pytest.raises(InvalidKindError):
            await service.add_entry(party.id, "refund", 10, "x")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_zero_and_negative_are_invalid_amount(self, service, amount):
        """Test 0 and -5 are InvalidAmount."""
        party = await make_party(service)
        with pytest.raises(InvalidAmountError):
            await service.add_entry(party.id, "credit", amount, "x")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("description", ["", "d" * 201])
    async def test_bad_descriptions(self, service, description):
        """Test empty and 201-character descriptions are InvalidDescription."""
        party = await make_party(service)
        with pytest.raises(InvalidDescriptionError):
            await service.add_entry(party.id, "credit", 10, description)

    @pytest.mark.asyncio
    async def test_validation_runs_before_store_access(self, entry_storage):
        """Test a bad entry for a missing party is a validation error."""
        parties = SpyPartyStorage()
        service = LedgerService(parties, entry_storage, default_timeout=5.0, currency_label="PKR")
        with pytest.raises(InvalidKindError):
            await service.add_entry(uuid4(), "refund", 10, "x")
        assert parties.calls == 0

    @pytest.mark.asyncio
    async def test_missing_party_on_add(self, service):
        """Test a good entry for an unknown party is PartyNotFound."""
        with pytest.raises(PartyNotFoundError) as exc:
            await service.add_entry(uuid4(), "credit", 10, "x")
        assert exc.value.kind == ErrorKind.PARTY_NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_party_on_view(self, service):
        """Test viewing an unknown party is PartyNotFound."""
        with pytest.raises(PartyNotFoundError):
            await service.get_ledger_view("garbage")

    @pytest.mark.asyncio
    async def test_update_validates_before_ownership(self, service):
        """Test update reports bad input even for a foreign entry."""
        owner = await make_party(service)
        other = await make_party(service, name="Other", number="999")
        entry = await service.add_entry(owner.id, "credit", 10, "x")
        with pytest.raises(InvalidAmountError):
            await service.update_entry(other.id, entry.id, "credit", 0, "x")

    @pytest.mark.asyncio
    async def test_unknown_entry(self, service):
        """Test an unknown or malformed entry id is EntryNotFound."""
        party = await make_party(service)
        with pytest.raises(EntryNotFoundError):
            await service.delete_entry(party.id, uuid4())
        with pytest.raises(EntryNotFoundError):
            await service.get_entry(party.id, "nope")


class TestOwnership:
    """Tests for cross-party isolation."""

    @pytest.mark.asyncio
    async def test_cross_party_delete_is_rejected(self, service, audit_storage):
        """Test deleting another party's entry fails and changes nothing."""
        party_a = await make_party(service, name="A", number="1")
        party_b = await make_party(service, name="B", number="2")
        entry = await service.add_entry(party_a.id, "credit", 100, "a")
        before = await service.get_ledger_view(party_a.id)

        with pytest.raises(EntryNotOwnedError):
            await service.delete_entry(party_b.id, entry.id)

        after = await service.get_ledger_view(party_a.id)
        assert after.entries == before.entries
        assert after.net_balance == before.net_balance

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.OWNERSHIP_VIOLATION
        assert events[0].entity_id == entry.id

    @pytest.mark.asyncio
    async def test_cross_party_update_and_get(self, service):
        """Test update and get through the wrong party are rejected."""
        party_a = await make_party(service, name="A", number="1")
        party_b = await make_party(service, name="B", number="2")
        entry = await service.add_entry(party_a.id, "credit", 100, "a")

        with pytest.raises(EntryNotOwnedError):
            await service.update_entry(party_b.id, entry.id, "debit", 1, "hijack")
        with pytest.raises(EntryNotOwnedError):
            await service.get_entry(party_b.id, entry.id)
        assert (await service.get_entry(party_a.id, entry.id)).kind is EntryKind.CREDIT


class TestCascadeDelete:
    """Tests for deleting a party with entries."""

    @pytest.mark.asyncio
    async def test_delete_removes_entries(self, service, entry_storage):
        """Test a deleted party takes its entries with it."""
        party = await make_party(service)
        keep = await make_party(service, name="Keep", number="2")
        for i in range(3):
            await service.add_entry(party.id, "credit", i + 1, f"e{i}")
        await service.add_entry(keep.id, "debit", 5, "k")

        assert await service.delete_party(party.id) == 3
        assert await entry_storage.list_entries_by_party(party.id) == []
        assert (await service.get_ledger_view(keep.id)).entry_count == 1

        with pytest.raises(NotFoundError):
            await service.get_party(party.id)
        with pytest.raises(PartyNotFoundError):
            await service.add_entry(party.id, "credit", 1, "late")

    @pytest.mark.asyncio
    async def test_failed_party_delete_can_be_retried(self, entry_storage):
        """Test a delete that fails after clearing entries completes on retry."""
        party_storage = FlakyPartyStorage()
        service = LedgerService(
            party_storage,
            entry_storage,
            default_timeout=5.0,
            currency_label="PKR",
        )
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 5, "x")

        with pytest.raises(StoreUnavailableError):
            await service.delete_party(party.id)
        assert await party_storage.party_exists(party.id)
        assert await entry_storage.list_entries_by_party(party.id) == []

        assert await service.delete_party(party.id) == 0
        assert not await party_storage.party_exists(party.id)

    @pytest.mark.asyncio
    async def test_delete_missing_party(self, service):
        """Test deleting an unknown party is NotFound."""
        with pytest.raises(NotFoundError):
            await service.delete_party(uuid4())


class TestConcurrency:
    """Tests for per-party serialization and deadlines."""

    @pytest.mark.asyncio
    async def test_concurrent_adds_all_land(self, service):
        """Test racing adds to one party all appear, each once."""
        party = await make_party(service)
        entries = await asyncio.gather(*[
            service.add_entry(party.id, "credit", 1, f"e{i}") for i in range(20)
        ])
        view = await service.get_ledger_view(party.id)
        assert view.entry_count == 20
        assert {row.entry.id for row in view.entries} == {e.id for e in entries}
        assert view.net_balance == Money.of(20)

    @pytest.mark.asyncio
    async def test_add_racing_delete_leaves_no_orphans(self, service, entry_storage):
        """Test an add queued behind a party delete does not create orphans."""
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 1, "first")

        results = await asyncio.gather(
            service.delete_party(party.id),
            service.add_entry(party.id, "credit", 1, "racing"),
            return_exceptions=True,
        )
        if isinstance(results[1], Exception):
            assert isinstance(results[1], PartyNotFoundError)
        assert await entry_storage.list_entries_by_party(party.id) == []

    @pytest.mark.asyncio
    async def test_timeout_raises_store_timeout(self, entry_storage):
        """Test a slow read before the write exceeds the deadline and writes nothing."""
        service = LedgerService(
            SlowPartyStorage(delay=0.5),
            entry_storage,
            default_timeout=5.0,
            currency_label="PKR",
        )
        party = await make_party(service)
        with pytest.raises(StoreTimeoutError) as exc:
            await service.add_entry(party.id, "credit", 1, "slow", timeout=0.05)
        assert exc.value.kind == ErrorKind.TIMEOUT
        assert await entry_storage.list_entries_by_party(party.id) == []

    @pytest.mark.asyncio
    async def test_started_write_is_not_cut_off(self, party_storage):
        """Test a write that outlasts the deadline still reports success."""
        entry_storage = SlowEntryStorage(delay=0.2)
        service = LedgerService(
            party_storage,
            entry_storage,
            default_timeout=5.0,
            currency_label="PKR",
        )
        party = await make_party(service)
        entry = await service.add_entry(party.id, "credit", 1, "slow", timeout=0.05)
        assert await entry_storage.list_entries_by_party(party.id) == [entry]

    @pytest.mark.asyncio
    async def test_lock_wait_counts_against_deadline(self, service):
        """Test waiting behind another mutation can time out."""
        party = await make_party(service)
        async with service._locks.hold(party.id):
            with pytest.raises(StoreTimeoutError):
                await service.add_entry(party.id, "credit", 1, "blocked", timeout=0.05)
        assert (await service.get_ledger_view(party.id)).entry_count == 0

    @pytest.mark.asyncio
    async def test_reads_do_not_wait_for_lock(self, service):
        """Test a ledger view is served while a mutation holds the lock."""
        party = await make_party(service)
        async with service._locks.hold(party.id):
            view = await service.get_ledger_view(party.id, timeout=0.5)
        assert view.party.id == party.id

    @pytest.mark.asyncio
    async def test_entry_delete_queued_behind_party_delete(
        self, service, party_storage, entry_storage,
    ):
        """Test an entry delete that finds its party gone reports PartyNotFound."""
        party = await make_party(service)
        entry = await service.add_entry(party.id, "credit", 1, "x")

        async with service._locks.hold(party.id):
            pending = asyncio.create_task(service.delete_entry(party.id, entry.id))
            await asyncio.sleep(0.01)
            await entry_storage.remove_entries_for_party(party.id)
            await party_storage.delete_party(party.id)

        with pytest.raises(PartyNotFoundError):
            await pending


class TestAuditTrail:
    """Tests for audit events emitted by the service."""

    @pytest.mark.asyncio
    async def test_mutations_are_audited(self, service, audit_storage):
        """Test each mutation leaves one event tagged with the party."""
        party = await make_party(service)
        entry = await service.add_entry(party.id, "credit", 10, "a")
        await service.update_entry(party.id, entry.id, "debit", 4, "b")
        await service.delete_entry(party.id, entry.id)
        await service.delete_party(party.id)

        events = await audit_storage.get_events_by_party(party.id)
        assert [e.event_type for e in events] == [
            AuditEventType.PARTY_CREATED,
            AuditEventType.ENTRY_ADDED,
            AuditEventType.ENTRY_UPDATED,
            AuditEventType.ENTRY_DELETED,
            AuditEventType.PARTY_DELETED,
        ]
        assert events[2].details["previous"]["amount"] == "10.00"
        assert events[2].details["current"]["kind"] == "debit"

    @pytest.mark.asyncio
    async def test_validation_failure_is_audited(self, service, audit_storage):
        """Test a rejected entry is logged with its issues."""
        party = await make_party(service)
        with pytest.raises(InvalidKindError):
            await service.add_entry(party.id, "refund", 0, "x")
        event = (await audit_storage.get_recent_events(limit=1))[0]
        assert event.event_type == AuditEventType.VALIDATION_FAILED
        assert len(event.details["issues"]) == 2

    @pytest.mark.asyncio
    async def test_store_error_is_audited_and_raised(self, party_storage, audit_storage):
        """Test store failures surface unchanged and are logged."""
        service = LedgerService(
            party_storage,
            FailingEntryStorage(),
            audit_logger=AuditLogger(audit_storage),
            default_timeout=5.0,
            currency_label="PKR",
        )
        party = await make_party(service)
        with pytest.raises(StoreUnavailableError):
            await service.get_ledger_view(party.id)
        event = (await audit_storage.get_recent_events(limit=1))[0]
        assert event.event_type == AuditEventType.STORE_ERROR
        assert event.error_code == "store_unavailable"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_audited_and_raised(self, party_storage, audit_storage):
        """Test a non-ledger exception propagates and leaves a system error event."""
        service = LedgerService(
            party_storage,
            BrokenEntryStorage(),
            audit_logger=AuditLogger(audit_storage),
            default_timeout=5.0,
            currency_label="PKR",
        )
        party = await make_party(service)
        with pytest.raises(RuntimeError):
            await service.get_ledger_view(party.id)
        event = (await audit_storage.get_recent_events(limit=1))[0]
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.error_message == "row decoder crashed"
        assert event.details == {"operation": "get_ledger_view"}

    @pytest.mark.asyncio
    async def test_disabled_audit_logs_nothing(self, party_storage, entry_storage, audit_storage):
        """Test audit_enabled=False keeps the audit log empty."""
        service = LedgerService(
            party_storage,
            entry_storage,
            audit_logger=AuditLogger(audit_storage, enabled=False),
            default_timeout=5.0,
            currency_label="PKR",
        )
        await make_party(service)
        assert await audit_storage.get_recent_events() == []


class TestFactory:
    """Tests for create_ledger_service."""

    @pytest.mark.asyncio
    async def test_memory_backend(self):
        """Test the factory wires a working in-memory service."""
        service = create_ledger_service("memory")
        party = await make_party(service)
        await service.add_entry(party.id, "credit", 5, "x")
        assert (await service.get_ledger_view(party.id)).net_balance == Money.of(5)

    def test_unknown_backend(self):
        """Test an unknown backend name is rejected."""
        with pytest.raises(ValueError):
            create_ledger_service("postgres")
