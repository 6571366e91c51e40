"""
Party Ledger - Source Package

A customer ledger: every party accumulates credit and debit entries and the
system can always report totals, the net balance and a running balance for
each entry.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. Balances are derived on every read, never stored
3. Validate first, then check existence, then check ownership
4. One mutation in flight per party
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Party Ledger Team"
