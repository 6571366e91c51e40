"""
Ledger Read Models

These are derived views. Nothing here is persisted; every instance is built
fresh from the stored entries on each read.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from party_ledger.models.amount import Money
from party_ledger.models.entry import LedgerEntry
from party_ledger.models.party import Party


class LedgerTotals(BaseModel):
    """Aggregate figures over a party's entries."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    total_credit: Money
    total_debit: Money
    net_balance: Money


class RunningBalance(BaseModel):
    """An entry paired with the party balance right after it."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    entry: LedgerEntry
    balance_after: Money


class LedgerView(BaseModel):
    """
    Everything the UI needs to render one party's ledger.

    `entries` are in ledger order (oldest first) with their running balances.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    party: Party
    entries: list[RunningBalance] = Field(default_factory=list)
    total_credit: Money
    total_debit: Money
    net_balance: Money

    @property
    def entry_count(self) -> int:
        return len(self.entries)


class Page(BaseModel):
    """One page of an already loaded result set."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[Any] = Field(default_factory=list)
    page: int = Field(ge=1)
    page_size: int = Field(ge=1)
    total_items: int = Field(ge=0)

    @property
    def total_pages(self) -> int:
        if self.total_items == 0:
            return 0
        return (self.total_items + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages
