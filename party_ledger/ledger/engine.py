"""
Ledger Engine

Pure functions over a party's entries. Nothing here touches storage or
keeps state between calls; the same input always yields the same output
and the input sequence is never modified.

DESIGN DECISION: Running balances are replayed from zero on every call.
There is no cached "balance so far" to repair when a historical entry is
edited or deleted.
"""

from typing import Iterable

from party_ledger.models.amount import Money
from party_ledger.models.entry import EntryKind, LedgerEntry
from party_ledger.models.ledger import LedgerTotals, RunningBalance


def signed_amount(entry: LedgerEntry) -> Money:
    """+amount for a credit, -amount for a debit."""
    return entry.signed_amount


def order_entries(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Return a new list in ledger order: created_at, then sequence."""
    return sorted(entries, key=lambda entry: entry.sort_key)


def aggregate(entries: Iterable[LedgerEntry]) -> LedgerTotals:
    """
    Total credits, total debits and the net balance.

    An empty ledger yields zero for all three. Order does not matter.
    """
    total_credit = Money.zero()
    total_debit = Money.zero()

    for entry in entries:
        if entry.kind is EntryKind.CREDIT:
            total_credit = total_credit + entry.amount
        else:
            total_debit = total_debit + entry.amount

    return LedgerTotals(
        total_credit=total_credit,
        total_debit=total_debit,
        net_balance=total_credit - total_debit,
    )


def running_balances(entries: Iterable[LedgerEntry]) -> list[RunningBalance]:
    """
    Pair each entry with the balance immediately after it.

    Entries are taken in the order given; callers pass them in ledger
    order (see `order_entries`). The balance before the first entry is 0.
    """
    balance = Money.zero()
    rows = []

    for entry in entries:
        balance = balance + entry.signed_amount
        rows.append(RunningBalance(entry=entry, balance_after=balance))

    return rows
