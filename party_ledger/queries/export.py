"""
CSV Export

Materializes an already loaded ledger or party list as CSV text. Amounts use
Money.format(), so the file is locale-stable and reloads to the same values.
"""

import csv
import io
from typing import Optional, Sequence

from party_ledger.models.ledger import LedgerView
from party_ledger.models.party import Party


LEDGER_CSV_HEADER = ["Date", "Type", "Description", "Amount", "Balance"]
PARTIES_CSV_HEADER = ["Name", "Number", "Address"]


def _writer(buffer: io.StringIO):
    return csv.writer(buffer, lineterminator="\n")


def ledger_view_to_csv(view: LedgerView) -> str:
    """
    One row per entry in ledger order, then a blank line and the totals.

    Date is the entry's creation date (YYYY-MM-DD, UTC).
    """
    buffer = io.StringIO()
    writer = _writer(buffer)

    writer.writerow(LEDGER_CSV_HEADER)
    for row in view.entries:
        entry = row.entry
        writer.writerow([
            entry.created_at.date().isoformat(),
            entry.kind.value.capitalize(),
            entry.description,
            entry.amount.format(),
            row.balance_after.format(),
        ])

    writer.writerow([])
    writer.writerow(["Total Credit", view.total_credit.format()])
    writer.writerow(["Total Debit", view.total_debit.format()])
    writer.writerow(["Net Balance", view.net_balance.format()])

    return buffer.getvalue()


def parties_to_csv(parties: Sequence[Party]) -> str:
    buffer = io.StringIO()
    writer = _writer(buffer)

    writer.writerow(PARTIES_CSV_HEADER)
    for party in parties:
        writer.writerow([party.name, party.number, party.address])

    return buffer.getvalue()


def ledger_summary(view: LedgerView, currency: Optional[str] = None) -> dict[str, str]:
    """
    The totals of a ledger as display text, e.g. {"net_balance": "PKR 1,234.50"}.

    For on-screen use only; CSV keeps the plain Money.format() form.
    """
    return {
        "party": view.party.name,
        "entries": str(view.entry_count),
        "total_credit": view.total_credit.format_display(currency),
        "total_debit": view.total_debit.format_display(currency),
        "net_balance": view.net_balance.format_display(currency),
    }
