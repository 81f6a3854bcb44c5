from __future__ import annotations

"""
stakeledger.custody
===================

Boundary between the ledger and whatever actually moves assets.

The engine only needs two calls: `pull` an amount of a named asset from an
external holder into the engine-held pool, and `push` an amount from the pool
back to a holder. Both are failable and must raise `CustodyTransferFailed`
when the transfer did not happen; the engine writes ledger state only after
the call returns.

`MemoryCustody` is a deterministic in-process gateway used by tests, the REST
app, and devnet tooling. Production deployments inject their own gateway
(token contract bridge, custodian API, ...) implementing the same protocol.
"""

from collections import defaultdict
from threading import RLock
from typing import Callable, DefaultDict, Dict, Optional, Protocol, Tuple, runtime_checkable
import logging

from stakeledger.errors import CustodyTransferFailed

log = logging.getLogger(__name__)


@runtime_checkable
class CustodyGateway(Protocol):
    """Asset-movement interface injected into the engine."""

    def pull(self, asset: str, holder: str, amount: int) -> None:
        """Move `amount` of `asset` from `holder` into the held pool."""

    def push(self, asset: str, holder: str, amount: int) -> None:
        """Move `amount` of `asset` from the held pool to `holder`."""


TransferHook = Callable[[str, str, str, int], None]


class MemoryCustody:
    """
    In-memory custody: external holder balances and the engine-held pool, per asset.

    An optional `on_transfer(direction, asset, holder, amount)` hook runs after
    each successful transfer; it lets callers model token callbacks that call
    back into the engine.
    """

    def __init__(self, *, on_transfer: Optional[TransferHook] = None) -> None:
        self._holders: DefaultDict[Tuple[str, str], int] = defaultdict(int)
        self._pool: DefaultDict[str, int] = defaultdict(int)
        self._lock = RLock()
        self.on_transfer = on_transfer

    # --- funding helpers ---

    def fund_holder(self, holder: str, asset: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("amount must be >= 0")
        with self._lock:
            self._holders[(holder, asset)] += amount
            return self._holders[(holder, asset)]

    def fund_pool(self, asset: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("amount must be >= 0")
        with self._lock:
            self._pool[asset] += amount
            return self._pool[asset]

    # --- queries ---

    def balance_of(self, holder: str, asset: str) -> int:
        with self._lock:
            return self._holders.get((holder, asset), 0)

    def pool_balance(self, asset: str) -> int:
        with self._lock:
            return self._pool.get(asset, 0)

    def dump(self) -> Dict:
        with self._lock:
            return {
                "holders": {f"{h}|{a}": v for (h, a), v in sorted(self._holders.items())},
                "pool": dict(sorted(self._pool.items())),
            }

    # --- CustodyGateway ---

    def _notify(self, direction: str, asset: str, holder: str, amount: int) -> None:
        if self.on_transfer is None:
            return
        try:
            self.on_transfer(direction, asset, holder, amount)
        except BaseException:
            # a failing callback reverts the transfer it was attached to
            with self._lock:
                sign = 1 if direction == "in" else -1
                self._holders[(holder, asset)] += sign * amount
                self._pool[asset] -= sign * amount
            raise

    def pull(self, asset: str, holder: str, amount: int) -> None:
        with self._lock:
            have = self._holders.get((holder, asset), 0)
            if have < amount:
                raise CustodyTransferFailed(
                    f"holder balance too low: have {have}, need {amount}",
                    direction="in", asset=asset, holder=holder, amount=amount,
                )
            self._holders[(holder, asset)] = have - amount
            self._pool[asset] += amount
        log.debug("custody: pull asset=%s holder=%s amount=%d", asset, holder, amount)
        self._notify("in", asset, holder, amount)

    def push(self, asset: str, holder: str, amount: int) -> None:
        with self._lock:
            have = self._pool.get(asset, 0)
            if have < amount:
                raise CustodyTransferFailed(
                    f"pool balance too low: have {have}, need {amount}",
                    direction="out", asset=asset, holder=holder, amount=amount,
                )
            self._pool[asset] = have - amount
            self._holders[(holder, asset)] += amount
        log.debug("custody: push asset=%s holder=%s amount=%d", asset, holder, amount)
        self._notify("out", asset, holder, amount)


__all__ = ["CustodyGateway", "MemoryCustody", "TransferHook"]
