from __future__ import annotations

"""
Staking engine — custody, staking and withdrawal orchestration
--------------------------------------------------------------

`StakingEngine` is the single serialized authority over one principal asset.
Every public mutating call runs as one atomic unit:

  1) validate inputs, capability and pause gate
  2) checkpoint the caller's emission (`EmissionAccrualEngine.commit`)
  3) stage account / counter changes on working copies
  4) perform the one external custody transfer (failable)
  5) write the staged state to the ledger and sequence the buffered records
  6) notify event subscribers, after the lock is released

Nothing is written before step 5, so any error in steps 1-4 (including a
failed payout) leaves no observable ledger mutation. A process-wide lock
serializes operations, and a non-reentrant guard rejects a custody callback
that calls back into the engine on the same thread.

Typical flow
~~~~~~~~~~~~
>>> custody = MemoryCustody()
>>> engine = StakingEngine("TOKEN", reward_rate=10**18, admin="ops", custody=custody)
>>> custody.fund_holder("alice", "TOKEN", 100)
100
>>> engine.deposit_principal("alice", 100).deposited
100
>>> engine.stake("alice", 40).staked
40
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock, get_ident
from typing import Dict, Iterator, List, Optional, Tuple, Callable
import logging
import time

from stakeledger import events as ev
from stakeledger import metrics
from stakeledger.access import AccessGuard, Capability, OperationalStateController
from stakeledger.accrual.annual import AnnualWithdrawalCalculator
from stakeledger.accrual.emission import EmissionAccrualEngine, PendingDetail
from stakeledger.config import EngineConfig
from stakeledger.custody import CustodyGateway, MemoryCustody
from stakeledger.errors import (
    CustodyTransferFailed,
    EngineBusy,
    InsufficientIdle,
    InsufficientStaked,
    InvalidAmount,
    NothingStaked,
    ReentrantCall,
    StakeLedgerError,
    ZeroAsset,
    ZeroIdentity,
)
from stakeledger.ledger.state import Account, AccountLedger, AccountStore, GlobalCounters, LedgerInvariantError

log = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


class ManualClock:
    """Deterministic clock for tests and simulations."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self.now = int(start)

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("cannot advance by a negative amount")
        self.now += int(seconds)
        return self.now

    def set(self, now: int) -> int:
        self.now = int(now)
        return self.now


@dataclass(frozen=True)
class WithdrawalReceipt:
    identity: str
    principal: int
    rewards: int
    duration: Optional[int] = None

    @property
    def payout(self) -> int:
        return self.principal + self.rewards


@dataclass(frozen=True)
class GlobalState:
    asset: str
    reward_rate: int
    total_staked: int
    paused: bool
    admins: Tuple[str, ...]

    def to_dict(self) -> Dict:
        return {
            "asset": self.asset,
            "reward_rate": self.reward_rate,
            "total_staked": self.total_staked,
            "paused": self.paused,
            "admins": list(self.admins),
        }


@dataclass
class _UnitOfWork:
    op: str
    now: int
    reward_rate: int
    total_staked: int
    paused: bool
    accounts: Dict[str, Account] = field(default_factory=dict)
    events: List[ev.LedgerEvent] = field(default_factory=list)

    def emit(self, record: Optional[ev.LedgerEvent]) -> None:
        if record is not None:
            self.events.append(record)


def _require_identity(identity: str) -> None:
    if not identity or not isinstance(identity, str):
        raise ZeroIdentity()


def _require_amount(amount: int, *, allow_zero: bool = False) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount=amount)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount(amount=amount)


class StakingEngine:
    """
    Custody-and-staking ledger for a single principal asset.

    All state lives on the instance; several engines can coexist in one
    process (metrics gauges are labelled by asset, so give each engine its own
    asset). Identities are opaque non-empty strings; amounts are ints in
    base units.

    The re-entrancy guard recognises a call back into the engine on the thread
    that is running the operation. A custody gateway that hands its callback to
    another thread and waits for it would wait on the engine lock forever; set
    `lock_timeout` (seconds) to make such callers fail with `EngineBusy`
    instead. With the default `None` callers from other threads block until
    the running operation finishes.
    """

    def __init__(
        self,
        asset: str,
        reward_rate: int,
        admin: str,
        *,
        custody: Optional[CustodyGateway] = None,
        clock: Optional[Clock] = None,
        store: Optional[AccountStore] = None,
        annual: Optional[AnnualWithdrawalCalculator] = None,
        lock_timeout: Optional[float] = None,
    ) -> None:
        if not asset:
            raise ZeroAsset()
        _require_identity(admin)
        _require_amount(reward_rate, allow_zero=True)

        self.asset = asset
        self.custody: CustodyGateway = custody if custody is not None else MemoryCustody()
        self.clock: Clock = clock or system_clock
        self.ledger = AccountLedger(store)
        self.access = AccessGuard(admin)
        self.operational = OperationalStateController()
        self.emission = EmissionAccrualEngine()
        self.annual = annual or AnnualWithdrawalCalculator()
        self.event_log = ev.EventLog()

        self._counters = GlobalCounters(reward_rate=reward_rate, total_staked=self.ledger.total_staked())
        self._lock = Lock()
        self.lock_timeout = lock_timeout
        self._active_thread: Optional[int] = None
        self._active_op: Optional[str] = None
        self._sync_gauges()
        log.info("engine: initialized asset=%s reward_rate=%d admin=%s", asset, reward_rate, admin)

    @classmethod
    def from_config(cls, cfg: EngineConfig, **kwargs) -> "StakingEngine":
        cfg.validate()
        kwargs.setdefault(
            "annual",
            AnnualWithdrawalCalculator(
                rate_bps=cfg.reward.annual_rate_bps,
                seconds_per_year=cfg.reward.seconds_per_year,
            ),
        )
        return cls(cfg.asset, cfg.reward.reward_rate, cfg.admin, **kwargs)

    # --- introspection ---

    @property
    def reward_rate(self) -> int:
        return self._counters.reward_rate

    @property
    def total_staked(self) -> int:
        return self._counters.total_staked

    @property
    def paused(self) -> bool:
        return self.operational.paused

    def get_account(self, identity: str) -> Account:
        return self.ledger.get(identity)

    def pending_rewards(self, identity: str) -> int:
        return self.emission.pending(self.ledger.get(identity), self._now(), rate=self.reward_rate)

    def pending_rewards_detailed(self, identity: str) -> PendingDetail:
        return self.emission.pending_detailed(self.ledger.get(identity), self._now(), rate=self.reward_rate)

    def global_state(self) -> GlobalState:
        return GlobalState(
            asset=self.asset,
            reward_rate=self.reward_rate,
            total_staked=self.total_staked,
            paused=self.paused,
            admins=tuple(self.access.holders(Capability.ADMIN)),
        )

    def events(self) -> Tuple[ev.LedgerEvent, ...]:
        return self.event_log.events()

    def subscribe(self, callback: ev.Subscriber) -> None:
        self.event_log.subscribe(callback)

    def check_invariants(self) -> None:
        """Verify per-account invariants and totalStaked == Σ staked."""
        total = 0
        for identity, acct in self.ledger.items():
            acct.assert_invariants(identity)
            total += acct.staked
        if total != self._counters.total_staked:
            raise LedgerInvariantError(
                f"total_staked={self._counters.total_staked} != sum(staked)={total}"
            )

    # --- inflow / stake-class operations (pause-gated) ---

    def deposit_principal(self, identity: str, amount: int) -> Account:
        _require_identity(identity)
        _require_amount(amount)
        with self._operation("deposit_principal") as uow:
            self.operational.require_active(uow.op)
            acct = self._checkpoint(uow, identity)
            acct.deposited += amount
            self._transfer_in(self.asset, identity, amount)
            uow.emit(ev.PrincipalDeposited(identity=identity, amount=amount))
        log.info("engine: deposit identity=%s amount=%d deposited=%d", identity, amount, acct.deposited)
        return acct.copy()

    def deposit_generic(self, identity: str, asset: str, amount: int) -> ev.GenericDeposited:
        """Custody `amount` of any asset without touching the caller's account."""
        _require_identity(identity)
        _require_amount(amount)
        if not asset:
            raise ZeroAsset()
        with self._operation("deposit_generic") as uow:
            self.operational.require_active(uow.op)
            self._transfer_in(asset, identity, amount)
            record = ev.GenericDeposited(identity=identity, asset=asset, amount=amount)
            uow.emit(record)
        log.info("engine: generic deposit identity=%s asset=%s amount=%d", identity, asset, amount)
        return record

    def stake(self, identity: str, amount: int) -> Account:
        _require_identity(identity)
        _require_amount(amount)
        with self._operation("stake") as uow:
            self.operational.require_active(uow.op)
            acct = self._checkpoint(uow, identity)
            if acct.idle < amount:
                raise InsufficientIdle(requested=amount, idle=acct.idle, identity=identity)
            if acct.staked == 0:
                acct.stake_start = uow.now
            # a top-up keeps the running cycle's stake_start
            acct.staked += amount
            uow.total_staked += amount
            uow.emit(ev.Staked(identity=identity, amount=amount))
        log.info("engine: stake identity=%s amount=%d staked=%d", identity, amount, acct.staked)
        return acct.copy()

    def unstake(self, identity: str, amount: int) -> Account:
        _require_identity(identity)
        _require_amount(amount)
        with self._operation("unstake") as uow:
            self.operational.require_active(uow.op)
            acct = self._checkpoint(uow, identity)
            if amount > acct.staked:
                raise InsufficientStaked(requested=amount, staked=acct.staked, identity=identity)
            acct.staked -= amount
            uow.total_staked -= amount
            if acct.staked == 0:
                acct.stake_start = 0
            uow.emit(ev.Unstaked(identity=identity, amount=amount))
        log.info("engine: unstake identity=%s amount=%d staked=%d", identity, amount, acct.staked)
        return acct.copy()

    # --- withdrawals (never pause-gated) ---

    def withdraw_principal(self, identity: str, principal: int, claim_rewards: bool = False) -> WithdrawalReceipt:
        """
        Withdraw idle principal and, when `claim_rewards`, every accrued
        emission unit. A zero principal is allowed and acts as a checkpoint
        (or a rewards-only claim).
        """
        _require_identity(identity)
        _require_amount(principal, allow_zero=True)
        with self._operation("withdraw_principal") as uow:
            acct = self._checkpoint(uow, identity)
            if principal > acct.idle:
                raise InsufficientIdle(requested=principal, idle=acct.idle, identity=identity)
            rewards = acct.rewards_accrued if claim_rewards else 0
            acct.rewards_accrued -= rewards
            acct.deposited -= principal
            self._transfer_out(self.asset, identity, principal + rewards)
            uow.emit(ev.Withdrawn(identity=identity, principal=principal, rewards=rewards))
        metrics.record_payout("principal", principal, rewards)
        log.info(
            "engine: withdraw identity=%s principal=%d rewards=%d deposited=%d",
            identity, principal, rewards, acct.deposited,
        )
        return WithdrawalReceipt(identity=identity, principal=principal, rewards=rewards)

    def withdraw_annual(self, identity: str, amount: int) -> WithdrawalReceipt:
        """
        Withdraw `amount` of staked principal plus a reward prorated over the
        current staking cycle at the annual rate. Emission is not checkpointed
        on this path.
        """
        _require_identity(identity)
        _require_amount(amount)
        with self._operation("withdraw_annual") as uow:
            acct = self._working_copy(uow, identity)
            if acct.staked == 0:
                raise NothingStaked(identity=identity)
            if amount > acct.staked:
                raise InsufficientStaked(requested=amount, staked=acct.staked, identity=identity)
            if acct.stake_start == 0:
                acct.stake_start = uow.now
            quote = self.annual.quote(amount, acct.stake_start, uow.now)
            acct.staked -= amount
            acct.deposited -= amount
            uow.total_staked -= amount
            # the remainder starts a fresh cycle; elapsed credit is not carried over
            acct.stake_start = uow.now if acct.staked > 0 else 0
            self._transfer_out(self.asset, identity, amount + quote.reward)
            uow.emit(ev.AnnualWithdrawn(identity=identity, principal=amount, rewards=quote.reward))
        metrics.record_payout("annual", amount, quote.reward)
        log.info(
            "engine: annual withdraw identity=%s amount=%d duration=%d reward=%d",
            identity, amount, quote.duration, quote.reward,
        )
        return WithdrawalReceipt(identity=identity, principal=amount, rewards=quote.reward, duration=quote.duration)

    # --- privileged operations ---

    def set_reward_rate(self, caller: str, new_rate: int) -> ev.RateChanged:
        _require_amount(new_rate, allow_zero=True)
        with self._operation("set_reward_rate") as uow:
            self.access.require(caller, Capability.ADMIN)
            record = ev.RateChanged(old=uow.reward_rate, new=new_rate)
            uow.reward_rate = new_rate
            uow.emit(record)
        log.info("engine: reward rate %d -> %d by=%s", record.old, record.new, caller)
        return record

    def pause(self, caller: str) -> bool:
        with self._operation("pause") as uow:
            self.access.require(caller, Capability.ADMIN)
            changed = not uow.paused
            uow.paused = True
            if changed:
                uow.emit(ev.Paused())
        if changed:
            log.info("engine: paused by=%s", caller)
        return changed

    def unpause(self, caller: str) -> bool:
        with self._operation("unpause") as uow:
            self.access.require(caller, Capability.ADMIN)
            changed = uow.paused
            uow.paused = False
            if changed:
                uow.emit(ev.Unpaused())
        if changed:
            log.info("engine: unpaused by=%s", caller)
        return changed

    def grant_role(self, caller: str, identity: str, capability: Capability = Capability.ADMIN) -> bool:
        with self._operation("grant_role") as uow:
            granted = self.access.grant(caller, identity, capability, at=uow.now)
            if granted:
                uow.emit(ev.RoleGranted(identity=identity, capability=capability.value, actor=caller))
        return granted

    def revoke_role(self, caller: str, identity: str, capability: Capability = Capability.ADMIN) -> bool:
        with self._operation("revoke_role") as uow:
            revoked = self.access.revoke(caller, identity, capability, at=uow.now)
            if revoked:
                uow.emit(ev.RoleRevoked(identity=identity, capability=capability.value, actor=caller))
        return revoked

    # --- load/save ---

    def dump(self) -> Dict:
        if self._active_thread == get_ident():
            raise ReentrantCall(op="dump", active=self._active_op)
        self._acquire("dump")
        try:
            return {
                "asset": self.asset,
                "counters": self._counters.snapshot(),
                "paused": self.paused,
                "annual": {
                    "rate_bps": self.annual.rate_bps,
                    "seconds_per_year": self.annual.seconds_per_year,
                },
                "access": self.access.dump(),
                "ledger": self.ledger.dump(),
            }
        finally:
            self._lock.release()

    @classmethod
    def load(
        cls,
        data: Dict,
        *,
        custody: Optional[CustodyGateway] = None,
        clock: Optional[Clock] = None,
        store: Optional[AccountStore] = None,
        lock_timeout: Optional[float] = None,
    ) -> "StakingEngine":
        access = AccessGuard.load(data.get("access", {}))
        counters = GlobalCounters.restore(data.get("counters", {}))
        annual = data.get("annual", {})
        engine = cls(
            data["asset"],
            counters.reward_rate,
            access.holders(Capability.ADMIN)[0],
            custody=custody,
            clock=clock,
            store=store,
            lock_timeout=lock_timeout,
            annual=AnnualWithdrawalCalculator(
                rate_bps=int(annual.get("rate_bps", AnnualWithdrawalCalculator().rate_bps)),
                seconds_per_year=int(annual.get("seconds_per_year", AnnualWithdrawalCalculator().seconds_per_year)),
            ),
        )
        engine.access = access
        engine.ledger = AccountLedger.load(data.get("ledger", {}), store)
        engine._counters = counters
        if data.get("paused"):
            engine.operational.pause()
        engine.check_invariants()
        engine._sync_gauges()
        return engine

    # --- internals ---

    def _now(self) -> int:
        now = int(self.clock())
        if now < 0:
            raise ValueError(f"clock returned a negative timestamp: {now}")
        return now

    def _acquire(self, op: str) -> None:
        if self.lock_timeout is None:
            self._lock.acquire()
            return
        if not self._lock.acquire(timeout=self.lock_timeout):
            metrics.record_operation(op, EngineBusy.code)
            raise EngineBusy(op=op, active=self._active_op, timeout=self.lock_timeout)

    @contextmanager
    def _operation(self, op: str) -> Iterator[_UnitOfWork]:
        if self._active_thread == get_ident():
            raise ReentrantCall(op=op, active=self._active_op)
        self._acquire(op)
        try:
            self._active_thread, self._active_op = get_ident(), op
            try:
                with metrics.time_operation(op):
                    uow = _UnitOfWork(
                        op=op,
                        now=self._now(),
                        reward_rate=self._counters.reward_rate,
                        total_staked=self._counters.total_staked,
                        paused=self.operational.paused,
                    )
                    try:
                        yield uow
                    except StakeLedgerError as e:
                        metrics.record_operation(op, e.code)
                        log.debug("engine: %s rejected code=%s details=%s", op, e.code, e.details)
                        raise
                    self._apply(uow)
                    # sequenced under the lock so the log follows commit order
                    records = self.event_log.append(uow.events)
            finally:
                self._active_thread = self._active_op = None
        finally:
            self._lock.release()
        self.event_log.notify(records)

    def _apply(self, uow: _UnitOfWork) -> None:
        for identity, acct in uow.accounts.items():
            acct.assert_invariants(identity)
        if uow.total_staked < 0:
            raise LedgerInvariantError(f"total_staked would become negative: {uow.total_staked}")
        for identity, acct in uow.accounts.items():
            self.ledger.put(identity, acct)
        self._counters.total_staked = uow.total_staked
        self._counters.reward_rate = uow.reward_rate
        if uow.paused:
            self.operational.pause()
        else:
            self.operational.unpause()
        for record in uow.events:
            if isinstance(record, ev.AccrualRecorded):
                metrics.record_accrual(record.amount)
        metrics.record_operation(uow.op)
        self._sync_gauges()

    def _sync_gauges(self) -> None:
        metrics.set_state(
            asset=self.asset,
            total_staked=self._counters.total_staked,
            reward_rate=self._counters.reward_rate,
            paused=self.operational.paused,
        )

    def _working_copy(self, uow: _UnitOfWork, identity: str) -> Account:
        acct = uow.accounts.get(identity)
        if acct is None:
            acct = uow.accounts[identity] = self.ledger.get(identity)
        return acct

    def _checkpoint(self, uow: _UnitOfWork, identity: str) -> Account:
        acct = self._working_copy(uow, identity)
        uow.emit(self.emission.commit(identity, acct, uow.now, rate=uow.reward_rate))
        return acct

    def _transfer_in(self, asset: str, holder: str, amount: int) -> None:
        self._transfer("in", asset, holder, amount)

    def _transfer_out(self, asset: str, holder: str, amount: int) -> None:
        self._transfer("out", asset, holder, amount)

    def _transfer(self, direction: str, asset: str, holder: str, amount: int) -> None:
        if amount == 0:
            return
        fn = self.custody.pull if direction == "in" else self.custody.push
        try:
            fn(asset, holder, amount)
        except StakeLedgerError as e:
            log.warning(
                "engine: custody %s failed asset=%s holder=%s amount=%d code=%s",
                direction, asset, holder, amount, e.code,
            )
            raise
        except Exception as exc:
            log.warning(
                "engine: custody %s failed asset=%s holder=%s amount=%d error=%r",
                direction, asset, holder, amount, exc,
            )
            raise CustodyTransferFailed(
                str(exc) or type(exc).__name__,
                direction=direction, asset=asset, holder=holder, amount=amount,
            ) from exc


__all__ = [
    "Clock",
    "system_clock",
    "ManualClock",
    "WithdrawalReceipt",
    "GlobalState",
    "StakingEngine",
]
