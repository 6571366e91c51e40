"""
Shared fixtures.

All tests run against in-process stores. No network calls.
"""

import pytest

from party_ledger.audit import AuditLogger
from party_ledger.service import LedgerService
from party_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryEntryStorage,
    InMemoryPartyStorage,
)

from tests.clocks import TickingClock


@pytest.fixture
def party_storage():
    return InMemoryPartyStorage(clock=TickingClock())


@pytest.fixture
def entry_storage():
    return InMemoryEntryStorage(clock=TickingClock())


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def service(party_storage, entry_storage, audit_storage):
    return LedgerService(
        party_storage,
        entry_storage,
        audit_logger=AuditLogger(audit_storage),
        default_timeout=5.0,
        currency_label="PKR",
    )
