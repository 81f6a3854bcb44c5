from __future__ import annotations

import pytest

from stakeledger import events as ev
from stakeledger.config import SCALE
from stakeledger.engine import StakingEngine
from stakeledger.errors import (
    InsufficientIdle,
    InsufficientStaked,
    InvalidAmount,
    NothingStaked,
    Paused,
    ZeroAsset,
    ZeroIdentity,
)

from stakeledger.tests.helpers import ASSET, OWNER, T0, UNIT, USER

THIRTY_DAYS = 2_592_000


def _deposit_and_stake(engine, fund, deposit: int, stake: int, who: str = USER) -> None:
    fund(who, deposit)
    engine.deposit_principal(who, deposit)
    if stake:
        engine.stake(who, stake)


# ---------------------------------------------------------------- deposits ---


def test_deposit_moves_assets_into_custody(engine, custody, fund):
    fund(USER, 10)
    pool_before = custody.pool_balance(ASSET)
    acct = engine.deposit_principal(USER, 10)

    assert acct.deposited == 10 and acct.staked == 0
    assert acct.last_update == T0
    assert custody.balance_of(USER, ASSET) == 0
    assert custody.pool_balance(ASSET) == pool_before + 10
    assert engine.events()[-1] == ev.PrincipalDeposited(identity=USER, amount=10)


def test_generic_deposit_does_not_touch_accounts(engine, custody, fund):
    fund(USER, 5, asset="ALT")
    record = engine.deposit_generic(USER, "ALT", 5)

    assert record == ev.GenericDeposited(identity=USER, asset="ALT", amount=5)
    assert custody.pool_balance("ALT") == 5
    assert engine.get_account(USER).is_empty()
    assert engine.ledger.identities() == []


def test_reference_validation(engine, fund):
    fund(USER, 10)
    with pytest.raises(ZeroIdentity):
        engine.deposit_principal("", 1)
    with pytest.raises(ZeroAsset):
        engine.deposit_generic(USER, "", 1)
    with pytest.raises(ZeroAsset):
        StakingEngine("", SCALE, OWNER)
    with pytest.raises(ZeroIdentity):
        StakingEngine(ASSET, SCALE, "")


@pytest.mark.parametrize("amount", [0, -1, True, 1.5, "3"])
def test_invalid_amounts_are_rejected(engine, fund, amount):
    _deposit_and_stake(engine, fund, 10, 5)
    for call in (engine.deposit_principal, engine.stake, engine.unstake, engine.withdraw_annual):
        with pytest.raises(InvalidAmount):
            call(USER, amount)


def test_zero_principal_withdrawal_is_a_checkpoint(engine, clock, fund):
    _deposit_and_stake(engine, fund, 10, 10)
    clock.advance(10)
    receipt = engine.withdraw_principal(USER, 0)

    assert receipt.payout == 0
    acct = engine.get_account(USER)
    assert acct.rewards_accrued == 100
    assert acct.last_update == T0 + 10


# ----------------------------------------------------------------- staking ---


def test_emission_accrues_per_second(engine, clock, fund):
    _deposit_and_stake(engine, fund, 10, 10)
    clock.advance(10)
    assert engine.pending_rewards(USER) == 100
    assert engine.pending_rewards_detailed(USER).as_tuple() == (100, 100, 0)


def test_stake_cannot_exceed_idle(engine, fund):
    _deposit_and_stake(engine, fund, 10, 4)
    with pytest.raises(InsufficientIdle) as ei:
        engine.stake(USER, 7)
    assert ei.value.details == {"identity": USER, "requested": 7, "idle": 6}
    assert engine.get_account(USER).staked == 4


def test_top_up_keeps_cycle_start_and_full_unstake_resets_it(engine, clock, fund):
    _deposit_and_stake(engine, fund, 20, 5)
    assert engine.get_account(USER).stake_start == T0

    clock.advance(100)
    assert engine.stake(USER, 5).stake_start == T0

    clock.advance(50)
    acct = engine.unstake(USER, 4)
    assert acct.staked == 6 and acct.stake_start == T0

    acct = engine.unstake(USER, 6)
    assert acct.staked == 0 and acct.stake_start == 0
    assert acct.deposited == 20
    assert engine.total_staked == 0


def test_unstake_checkpoints_before_changing_stake(engine, clock, fund):
    _deposit_and_stake(engine, fund, 10, 10)
    clock.advance(10)
    engine.unstake(USER, 5)
    clock.advance(10)

    acct = engine.get_account(USER)
    assert acct.rewards_accrued == 100
    assert engine.pending_rewards(USER) == 150

    with pytest.raises(InsufficientStaked):
        engine.unstake(USER, 6)


def test_idle_time_is_not_rewarded_after_restaking(engine, clock, fund):
    _deposit_and_stake(engine, fund, 10, 10)
    engine.unstake(USER, 10)
    clock.advance(1_000)
    engine.stake(USER, 10)
    clock.advance(10)
    assert engine.pending_rewards(USER) == 100


def test_total_staked_tracks_every_account(engine, fund):
    _deposit_and_stake(engine, fund, 30, 10, who="a")
    _deposit_and_stake(engine, fund, 30, 25, who="b")
    engine.unstake("a", 3)

    assert engine.total_staked == 32
    assert engine.ledger.total_staked() == 32
    engine.check_invariants()


# ------------------------------------------------------------- withdrawals ---


def test_principal_withdrawal_limited_to_idle(engine, custody, fund):
    _deposit_and_stake(engine, fund, 20, 10)
    receipt = engine.withdraw_principal(USER, 5)
    assert receipt.principal == 5 and receipt.rewards == 0
    assert custody.balance_of(USER, ASSET) == 5

    with pytest.raises(InsufficientIdle):
        engine.withdraw_principal(USER, 6)
    assert engine.get_account(USER).deposited == 15


def test_principal_withdrawal_with_reward_claim(engine, clock, custody, fund):
    _deposit_and_stake(engine, fund, 25, 10)
    clock.advance(12)

    receipt = engine.withdraw_principal(USER, 8, claim_rewards=True)
    assert (receipt.principal, receipt.rewards, receipt.payout) == (8, 120, 128)
    assert custody.balance_of(USER, ASSET) == 128

    acct = engine.get_account(USER)
    assert acct.rewards_accrued == 0
    assert acct.deposited == 17 and acct.staked == 10
    assert engine.events()[-1] == ev.Withdrawn(identity=USER, principal=8, rewards=120)


def test_rewards_only_claim(engine, clock, custody, fund):
    _deposit_and_stake(engine, fund, 10, 10)
    clock.advance(3)
    receipt = engine.withdraw_principal(USER, 0, claim_rewards=True)
    assert receipt.payout == 30
    assert custody.balance_of(USER, ASSET) == 30
    assert engine.get_account(USER).deposited == 10


def test_annual_withdrawal_after_thirty_days(engine, clock, custody, fund):
    _deposit_and_stake(engine, fund, 100 * UNIT, 100 * UNIT)
    clock.advance(THIRTY_DAYS)

    receipt = engine.withdraw_annual(USER, 50 * UNIT)
    expected = 50 * UNIT * 500 * THIRTY_DAYS // (31_536_000 * 10_000)
    assert receipt.rewards == expected
    assert receipt.duration == THIRTY_DAYS
    assert custody.balance_of(USER, ASSET) == 50 * UNIT + expected

    acct = engine.get_account(USER)
    assert acct.staked == 50 * UNIT
    assert acct.deposited == 50 * UNIT
    assert acct.stake_start == T0 + THIRTY_DAYS
    # emission is not checkpointed on this path
    assert acct.rewards_accrued == 0
    assert acct.last_update == T0
    assert engine.total_staked == 50 * UNIT
    assert engine.events()[-1] == ev.AnnualWithdrawn(identity=USER, principal=50 * UNIT, rewards=expected)


def test_full_annual_withdrawal_closes_the_cycle(engine, clock, fund):
    _deposit_and_stake(engine, fund, 10 * UNIT, 10 * UNIT)
    clock.advance(31_536_000)
    receipt = engine.withdraw_annual(USER, 10 * UNIT)
    assert receipt.rewards == UNIT // 2

    acct = engine.get_account(USER)
    assert acct.staked == 0 and acct.deposited == 0 and acct.stake_start == 0


def test_annual_withdrawal_requires_stake(engine, fund):
    _deposit_and_stake(engine, fund, 10, 0)
    with pytest.raises(NothingStaked):
        engine.withdraw_annual(USER, 1)

    engine.stake(USER, 4)
    with pytest.raises(InsufficientStaked):
        engine.withdraw_annual(USER, 5)


# ------------------------------------------------------------------- pause ---


def test_pause_blocks_inflow_but_never_withdrawals(engine, clock, custody, fund):
    _deposit_and_stake(engine, fund, 20, 10)
    fund(USER, 5)
    assert engine.pause(OWNER) is True

    with pytest.raises(Paused):
        engine.stake(USER, 1)
    with pytest.raises(Paused):
        engine.deposit_principal(USER, 5)
    with pytest.raises(Paused):
        engine.unstake(USER, 1)
    fund(USER, 1, asset="ALT")
    with pytest.raises(Paused):
        engine.deposit_generic(USER, "ALT", 1)
    assert custody.pool_balance("ALT") == 0
    assert custody.balance_of(USER, "ALT") == 1

    clock.advance(10)
    assert engine.withdraw_principal(USER, 5, claim_rewards=True).payout == 105
    assert engine.withdraw_annual(USER, 10).principal == 10

    assert engine.unpause(OWNER) is True
    engine.deposit_principal(USER, 5)


def test_rejected_operation_leaves_state_untouched(engine, clock, fund):
    _deposit_and_stake(engine, fund, 10, 10)
    clock.advance(10)
    before = engine.get_account(USER)
    n_events = len(engine.events())

    with pytest.raises(InsufficientIdle):
        engine.stake(USER, 1)

    assert engine.get_account(USER) == before
    assert len(engine.events()) == n_events


# ------------------------------------------------------------------ events ---


def test_event_stream_for_a_full_cycle(engine, clock, fund):
    seen = []
    engine.subscribe(lambda seq, e: seen.append((seq, e.name)))

    _deposit_and_stake(engine, fund, 10, 10)
    clock.advance(10)
    engine.unstake(USER, 10)

    assert list(engine.events()) == [
        ev.PrincipalDeposited(identity=USER, amount=10),
        ev.Staked(identity=USER, amount=10),
        ev.AccrualRecorded(identity=USER, amount=100),
        ev.Unstaked(identity=USER, amount=10),
    ]
    assert seen == [(1, "PrincipalDeposited"), (2, "Staked"), (3, "AccrualRecorded"), (4, "Unstaked")]


def test_failing_subscriber_does_not_break_operations(engine, fund):
    def boom(seq, e):
        raise RuntimeError("subscriber down")

    engine.subscribe(boom)
    _deposit_and_stake(engine, fund, 10, 10)
    assert engine.get_account(USER).staked == 10
