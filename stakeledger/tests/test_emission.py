from __future__ import annotations

import pytest

from stakeledger.accrual.emission import EmissionAccrualEngine, PendingDetail
from stakeledger.config import SCALE
from stakeledger.events import AccrualRecorded
from stakeledger.ledger.state import Account

from stakeledger.tests.helpers import T0, UNIT

ODD_RATE = SCALE // 3  # 0.333... units per second, forces a non-zero remainder


def _staked(staked: int, *, at: int = T0) -> Account:
    return Account(deposited=staked, staked=staked, last_update=at, stake_start=at)


def test_first_touch_only_sets_baseline():
    em = EmissionAccrualEngine()
    acct = Account(deposited=10, staked=10)
    rec = em.commit("a", acct, T0 + 500, rate=SCALE)
    assert rec is None
    assert acct.last_update == T0 + 500
    assert acct.rewards_accrued == 0
    assert acct.reward_remainder == 0


def test_pending_matches_rate_times_stake_times_time():
    em = EmissionAccrualEngine()
    acct = _staked(10)
    assert em.pending(acct, T0 + 10, rate=SCALE) == 100

    big = _staked(10 * UNIT)
    assert em.pending(big, T0 + 10, rate=SCALE) == 100 * UNIT


def test_pending_is_a_pure_view():
    em = EmissionAccrualEngine()
    acct = _staked(7)
    before = acct.copy()
    first = em.pending_detailed(acct, T0 + 41, rate=ODD_RATE)
    second = em.pending_detailed(acct, T0 + 41, rate=ODD_RATE)
    assert first == second
    assert acct == before


def test_pending_detailed_mirrors_commit():
    em = EmissionAccrualEngine()
    acct = _staked(7)
    acct.rewards_accrued = 5
    detail = em.pending_detailed(acct, T0 + 13, rate=ODD_RATE)

    raw = 7 * ODD_RATE * 13
    assert detail == PendingDetail(5 + raw // SCALE, raw // SCALE, raw % SCALE)

    rec = em.commit("a", acct, T0 + 13, rate=ODD_RATE)
    assert acct.rewards_accrued == detail.total
    assert acct.reward_remainder == detail.remainder
    assert rec == AccrualRecorded(identity="a", amount=detail.new_portion)


def test_commit_at_zero_delta_changes_nothing():
    em = EmissionAccrualEngine()
    acct = _staked(10)
    acct.rewards_accrued = 3
    acct.reward_remainder = 42
    rec = em.commit("a", acct, T0, rate=SCALE)
    assert rec is None
    assert acct.rewards_accrued == 3
    assert acct.reward_remainder == 42
    assert acct.last_update == T0


def test_idle_time_is_never_counted_retroactively():
    em = EmissionAccrualEngine()
    acct = Account(deposited=10, staked=0, last_update=T0)
    em.commit("a", acct, T0 + 1_000, rate=SCALE)
    assert acct.last_update == T0 + 1_000
    acct.staked = 10
    assert em.pending(acct, T0 + 1_010, rate=SCALE) == 100


def test_unstaked_account_reports_accrued_only():
    em = EmissionAccrualEngine()
    acct = Account(deposited=10, rewards_accrued=9, last_update=T0, reward_remainder=17)
    assert em.pending_detailed(acct, T0 + 99, rate=SCALE) == PendingDetail(9, 0, 17)


def test_split_checkpoints_equal_single_interval():
    em = EmissionAccrualEngine()
    intervals = [3, 7, 11, 19, 23]

    split = _staked(7)
    now = T0
    for secs in intervals:
        now += secs
        em.commit("a", split, now, rate=ODD_RATE)
        assert 0 <= split.reward_remainder < SCALE

    whole = _staked(7)
    em.commit("a", whole, T0 + sum(intervals), rate=ODD_RATE)

    assert split.rewards_accrued == whole.rewards_accrued
    assert split.reward_remainder == whole.reward_remainder
    assert split.rewards_accrued * SCALE + split.reward_remainder == 7 * ODD_RATE * sum(intervals)


def test_many_one_second_checkpoints_do_not_drift():
    em = EmissionAccrualEngine()
    acct = _staked(1)
    for i in range(1, 301):
        em.commit("a", acct, T0 + i, rate=ODD_RATE)
    # truncating every second would leave this at 0
    assert acct.rewards_accrued == ODD_RATE * 300 // SCALE == 99


def test_large_products_stay_exact():
    em = EmissionAccrualEngine()
    staked = 10**12 * UNIT
    acct = _staked(staked)
    ten_years = 10 * 31_536_000
    rec = em.commit("whale", acct, T0 + ten_years, rate=7 * SCALE)
    assert rec is not None
    assert acct.rewards_accrued == staked * 7 * ten_years
    assert acct.reward_remainder == 0


def test_clock_going_backwards_is_ignored():
    em = EmissionAccrualEngine()
    acct = _staked(10)
    assert em.commit("a", acct, T0 - 50, rate=SCALE) is None
    assert acct.last_update == T0
    assert acct.rewards_accrued == 0


def test_scale_must_be_positive():
    with pytest.raises(ValueError):
        EmissionAccrualEngine(scale=0)
