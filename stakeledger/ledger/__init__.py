from __future__ import annotations
"""
stakeledger.ledger
==================

Account records keyed by identity, the keyed-store protocol they are written
against, and the global counters shared by all accounts.
"""

from .state import (
    Account,
    AccountLedger,
    AccountStore,
    GlobalCounters,
    LedgerInvariantError,
    MemoryAccountStore,
)

__all__ = [
    "Account",
    "AccountLedger",
    "AccountStore",
    "GlobalCounters",
    "LedgerInvariantError",
    "MemoryAccountStore",
]
