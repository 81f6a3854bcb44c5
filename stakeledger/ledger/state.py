from __future__ import annotations

"""
Account ledger — per-identity custody & staking records
-------------------------------------------------------

This module maintains the *internal*, deterministic ledger of `Account` records
keyed by identity, plus the aggregate `GlobalCounters`.

It is storage-agnostic: records live behind the small `AccountStore` protocol
(default: `MemoryAccountStore`) as JSON-friendly dicts. Persistence engines only
need `get`/`put`/`keys`. `AccountLedger.dump()` / `AccountLedger.load()` give a
full snapshot for higher layers.

Amounts are integer *base units* (no floats). Every write checks:
  • deposited >= staked >= 0
  • 0 <= reward_remainder < SCALE
  • last_update never moves backwards

Reads hand out *working copies*: callers mutate the copy and write it back with
`put`, so a failed operation that never calls `put` leaves no trace.
Concurrency: a coarse `threading.RLock` makes `update` an atomic read-modify-write.
"""

from dataclasses import asdict, dataclass, replace
from threading import RLock
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from stakeledger.config import SCALE
from stakeledger.errors import StakeLedgerError

Amount = int
Timestamp = int


class LedgerInvariantError(StakeLedgerError):
    """Raised when a record about to be written violates a ledger invariant."""
    code = "LEDGER_INVARIANT"


@dataclass
class Account:
    deposited: Amount = 0
    staked: Amount = 0
    rewards_accrued: Amount = 0
    last_update: Timestamp = 0
    stake_start: Timestamp = 0
    reward_remainder: int = 0

    @property
    def idle(self) -> Amount:
        """Principal not earning emission (deposited - staked)."""
        return self.deposited - self.staked

    def is_empty(self) -> bool:
        return self == Account()

    def copy(self) -> "Account":
        return replace(self)

    def snapshot(self) -> Dict[str, int]:
        return asdict(self)

    @staticmethod
    def restore(d: Dict) -> "Account":
        acct = Account(
            deposited=int(d.get("deposited", 0)),
            staked=int(d.get("staked", 0)),
            rewards_accrued=int(d.get("rewards_accrued", 0)),
            last_update=int(d.get("last_update", 0)),
            stake_start=int(d.get("stake_start", 0)),
            reward_remainder=int(d.get("reward_remainder", 0)),
        )
        acct.assert_invariants()
        return acct

    def assert_invariants(self, identity: str = "?") -> None:
        if self.staked < 0 or self.deposited < self.staked:
            raise LedgerInvariantError(
                f"balance invariant violated for {identity}: "
                f"deposited={self.deposited} staked={self.staked}"
            )
        if self.rewards_accrued < 0:
            raise LedgerInvariantError(f"negative rewards for {identity}: {self.rewards_accrued}")
        if not (0 <= self.reward_remainder < SCALE):
            raise LedgerInvariantError(
                f"remainder out of range for {identity}: {self.reward_remainder}"
            )
        if self.last_update < 0 or self.stake_start < 0:
            raise LedgerInvariantError(f"negative timestamp for {identity}")


@dataclass
class GlobalCounters:
    """Aggregates shared by every account: emission rate and total stake."""

    reward_rate: int = 0
    total_staked: Amount = 0

    def snapshot(self) -> Dict[str, int]:
        return asdict(self)

    @staticmethod
    def restore(d: Dict) -> "GlobalCounters":
        return GlobalCounters(
            reward_rate=int(d.get("reward_rate", 0)),
            total_staked=int(d.get("total_staked", 0)),
        )


@runtime_checkable
class AccountStore(Protocol):
    """Minimal keyed store the ledger is written against."""

    def get(self, key: str) -> Optional[Dict]:
        """Return the stored record for `key`, or None."""

    def put(self, key: str, record: Dict) -> None:
        """Insert or overwrite the record for `key`."""

    def keys(self) -> Iterable[str]:
        """Iterate over stored keys."""


class MemoryAccountStore:
    """Dict-backed `AccountStore`."""

    def __init__(self, initial: Optional[Dict[str, Dict]] = None) -> None:
        self._data: Dict[str, Dict] = {k: dict(v) for k, v in (initial or {}).items()}

    def get(self, key: str) -> Optional[Dict]:
        rec = self._data.get(key)
        return None if rec is None else dict(rec)

    def put(self, key: str, record: Dict) -> None:
        self._data[key] = dict(record)

    def keys(self) -> Iterator[str]:
        return iter(sorted(self._data))


class AccountLedger:
    """
    Keyed ledger of `Account` records.

    Unknown identities read as the all-zero account; a zero-valued account is
    equivalent to an absent one and is never deleted once written.
    """

    def __init__(self, store: Optional[AccountStore] = None) -> None:
        self._store: AccountStore = store if store is not None else MemoryAccountStore()
        self._lock = RLock()

    # --- reads ---

    def get(self, identity: str) -> Account:
        """Return a working copy of the account for `identity`."""
        with self._lock:
            rec = self._store.get(identity)
        return Account() if rec is None else Account.restore(rec)

    def identities(self) -> List[str]:
        with self._lock:
            return list(self._store.keys())

    def items(self) -> List[Tuple[str, Account]]:
        with self._lock:
            return [(k, self.get(k)) for k in self._store.keys()]

    def total_staked(self) -> Amount:
        """Σ staked over every stored account."""
        return sum(acct.staked for _, acct in self.items())

    # --- writes ---

    def put(self, identity: str, account: Account) -> None:
        account.assert_invariants(identity)
        with self._lock:
            prev = self._store.get(identity)
            if prev is not None and int(prev.get("last_update", 0)) > account.last_update:
                raise LedgerInvariantError(
                    f"last_update moved backwards for {identity}: "
                    f"{prev.get('last_update')} -> {account.last_update}"
                )
            self._store.put(identity, account.snapshot())

    def update(self, identity: str, fn: Callable[[Account], None]) -> Account:
        """
        Atomic read-modify-write: `fn` mutates a working copy which is written
        back only if it returns without raising.
        """
        with self._lock:
            acct = self.get(identity)
            fn(acct)
            self.put(identity, acct)
            return acct.copy()

    # --- load/save ---

    def dump(self) -> Dict:
        with self._lock:
            return {"accounts": {k: v.snapshot() for k, v in self.items()}}

    @classmethod
    def load(cls, data: Dict, store: Optional[AccountStore] = None) -> "AccountLedger":
        ledger = cls(store)
        for k, v in data.get("accounts", {}).items():
            ledger.put(k, Account.restore(v))
        return ledger


__all__ = [
    "Amount",
    "Timestamp",
    "LedgerInvariantError",
    "Account",
    "GlobalCounters",
    "AccountStore",
    "MemoryAccountStore",
    "AccountLedger",
]
