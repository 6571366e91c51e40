"""
Party and Entry Queries

DESIGN DECISION: Queries are DETERMINISTIC and pure. They work on data the
service already loaded and never reach storage themselves.

Entry filtering runs on running-balance rows, after balances are computed.
A filtered row still shows the true balance at that point in the ledger,
not a balance over the visible subset.
"""

from typing import Any, Literal, Optional, Sequence, TypeVar

from party_ledger.errors import ErrorKind, InvalidFieldError, ValidationIssue
from party_ledger.models.entry import EntryKind
from party_ledger.models.ledger import Page, RunningBalance
from party_ledger.models.party import Party


T = TypeVar("T")

SortOrder = Literal["asc", "desc"]

PARTY_SORT_KEYS = ("name", "number", "address", "created_at", "updated_at")


def _bad_query(field: str, message: str, value: Any) -> InvalidFieldError:
    return InvalidFieldError(
        message,
        issues=[ValidationIssue(
            field=field,
            kind=ErrorKind.INVALID_FIELD,
            message=message,
            received=repr(value),
        )],
    )


def filter_parties(parties: Sequence[Party], text: Optional[str] = None) -> list[Party]:
    """
    Case-insensitive substring match on name, number or address.

    Empty or missing text returns every party.
    """
    needle = (text or "").strip().lower()
    if not needle:
        return list(parties)

    return [
        party for party in parties
        if needle in party.name.lower()
        or needle in party.number.lower()
        or needle in party.address.lower()
    ]


def sort_parties(
    parties: Sequence[Party],
    key: str = "name",
    descending: bool = False,
) -> list[Party]:
    """Sort parties by one field. Names sort case-insensitively."""
    if key not in PARTY_SORT_KEYS:
        raise _bad_query("sort", f"Cannot sort parties by {key!r}", key)

    def sort_value(party: Party):
        value = getattr(party, key)
        return value.lower() if isinstance(value, str) else value

    return sorted(parties, key=sort_value, reverse=descending)


def query_entries(
    rows: Sequence[RunningBalance],
    search: Optional[str] = None,
    kind: Optional[str] = None,
    order: SortOrder = "asc",
) -> list[RunningBalance]:
    """
    Filter ledger rows by description text and kind, then order them.

    `kind` of None or "all" keeps both credits and debits.
    """
    if order not in ("asc", "desc"):
        raise _bad_query("order", "Order must be 'asc' or 'desc'", order)

    wanted_kind = None
    if kind not in (None, "all"):
        try:
            wanted_kind = EntryKind(kind)
        except ValueError:
            raise _bad_query("kind", "Type filter must be 'all', 'credit' or 'debit'", kind)

    needle = (search or "").strip().lower()

    matched = [
        row for row in rows
        if (wanted_kind is None or row.entry.kind is wanted_kind)
        and (not needle or needle in row.entry.description.lower())
    ]
    matched.sort(key=lambda row: row.entry.sort_key, reverse=(order == "desc"))
    return matched


def paginate(items: Sequence[T], page: int = 1, page_size: int = 20) -> Page:
    """
    Slice one page out of a loaded result set.

    Pages are 1-based. A page past the end is empty, not an error.
    """
    if page < 1:
        raise _bad_query("page", "Page must be 1 or greater", page)
    if page_size < 1:
        raise _bad_query("page_size", "Page size must be 1 or greater", page_size)

    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total_items=len(items),
    )
