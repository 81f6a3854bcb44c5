from __future__ import annotations

"""
Continuous emission accrual with exact remainder carry
------------------------------------------------------

Accrual is lazy: an account's reward state is brought current only when it is
checkpointed (`commit`), immediately before any operation that changes its
stake. Between checkpoints `staked` and the rate are constant, so the reward
for the interval is

    raw          = staked * rate * delta          (exact integer product)
    total_scaled = raw + reward_remainder
    new_rewards  = total_scaled // SCALE
    remainder    = total_scaled %  SCALE          (carried to the next checkpoint)

Carrying the sub-unit remainder makes the result independent of how an
interval is split into checkpoints: committing [a,b] then [b,c] yields the same
`rewards_accrued` as committing [a,c] once. Python ints are arbitrary
precision, so the intermediate product never overflows.

The view functions (`pending`, `pending_detailed`) run the same arithmetic
without mutating anything.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging

from stakeledger.config import SCALE
from stakeledger.events import AccrualRecorded
from stakeledger.ledger.state import Account

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingDetail:
    """(total claimable, newly accrued since the last checkpoint, carried remainder)."""

    total: int
    new_portion: int
    remainder: int

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.total, self.new_portion, self.remainder)


class EmissionAccrualEngine:
    """
    Stateless calculator for per-second emission; the only state it touches is
    the `Account` passed to `commit`.
    """

    __slots__ = ("scale",)

    def __init__(self, scale: int = SCALE) -> None:
        if scale <= 0:
            raise ValueError("scale must be > 0")
        self.scale = scale

    # --- core arithmetic ---

    def _elapsed(self, account: Account, now: int) -> int:
        if account.last_update == 0:
            return 0
        return max(0, now - account.last_update)

    def _split(self, account: Account, rate: int, delta: int) -> Tuple[int, int]:
        total_scaled = account.staked * rate * delta + account.reward_remainder
        return divmod(total_scaled, self.scale)

    # --- views ---

    def pending(self, account: Account, now: int, *, rate: int) -> int:
        """Total claimable emission as of `now`, without mutating."""
        return self.pending_detailed(account, now, rate=rate).total

    def pending_detailed(self, account: Account, now: int, *, rate: int) -> PendingDetail:
        if account.staked == 0:
            return PendingDetail(account.rewards_accrued, 0, account.reward_remainder)
        delta = self._elapsed(account, now)
        new_rewards, remainder = self._split(account, rate, delta)
        return PendingDetail(account.rewards_accrued + new_rewards, new_rewards, remainder)

    # --- checkpoint ---

    def commit(self, identity: str, account: Account, now: int, *, rate: int) -> Optional[AccrualRecorded]:
        """
        Bring `account` current as of `now`.

        The first touch only records a baseline. Afterwards any staked interval
        is accrued with remainder carry, and `last_update` always advances so
        idle time is never counted once staking resumes. Returns the accrual
        record when whole units were added, else None.
        """
        if account.last_update == 0:
            account.last_update = now
            log.debug("accrual: baseline identity=%s now=%d", identity, now)
            return None

        record: Optional[AccrualRecorded] = None
        delta = self._elapsed(account, now)
        if account.staked > 0 and delta > 0:
            new_rewards, remainder = self._split(account, rate, delta)
            account.reward_remainder = remainder
            if new_rewards > 0:
                account.rewards_accrued += new_rewards
                record = AccrualRecorded(identity=identity, amount=new_rewards)
            log.debug(
                "accrual: checkpoint identity=%s delta=%d new=%d remainder=%d",
                identity, delta, new_rewards, remainder,
            )

        if now > account.last_update:
            account.last_update = now
        return record


__all__ = ["PendingDetail", "EmissionAccrualEngine"]
