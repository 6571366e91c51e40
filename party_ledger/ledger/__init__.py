"""Ledger engine package."""

from party_ledger.ledger.engine import (
    aggregate,
    order_entries,
    running_balances,
    signed_amount,
)

__all__ = [
    "aggregate",
    "order_entries",
    "running_balances",
    "signed_amount",
]
