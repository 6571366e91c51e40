"""Validation package."""

from party_ledger.validation.validator import (
    EntryInput,
    LedgerValidator,
    raise_for_issues,
)

__all__ = [
    "EntryInput",
    "LedgerValidator",
    "raise_for_issues",
]
