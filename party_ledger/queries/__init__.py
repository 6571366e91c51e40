"""Query, filter and export helpers."""

from party_ledger.queries.export import (
    ledger_summary,
    ledger_view_to_csv,
    parties_to_csv,
)
from party_ledger.queries.filters import (
    PARTY_SORT_KEYS,
    filter_parties,
    paginate,
    query_entries,
    sort_parties,
)

__all__ = [
    "PARTY_SORT_KEYS",
    "filter_parties",
    "ledger_summary",
    "ledger_view_to_csv",
    "paginate",
    "parties_to_csv",
    "query_entries",
    "sort_parties",
]
