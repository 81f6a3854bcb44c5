from __future__ import annotations

import pytest

from stakeledger import events as ev
from stakeledger.access import AccessGuard, Capability, OperationalStateController
from stakeledger.config import SCALE
from stakeledger.errors import Paused, Unauthorized

from stakeledger.tests.helpers import OWNER, T0, USER


def test_only_admins_change_the_rate(engine):
    with pytest.raises(Unauthorized):
        engine.set_reward_rate(USER, 5)
    assert engine.reward_rate == SCALE

    record = engine.set_reward_rate(OWNER, 5)
    assert record == ev.RateChanged(old=SCALE, new=5)
    assert engine.reward_rate == 5
    assert engine.global_state().reward_rate == 5


def test_rate_change_applies_from_last_checkpoint(engine, clock, fund):
    fund(USER, 10)
    engine.deposit_principal(USER, 10)
    engine.stake(USER, 10)
    clock.advance(10)
    engine.set_reward_rate(OWNER, 2 * SCALE)
    clock.advance(10)
    # the account was not checkpointed at the rate change
    assert engine.pending_rewards(USER) == 10 * 2 * 20


def test_zero_rate_stops_new_emission(engine, clock, fund):
    fund(USER, 10)
    engine.deposit_principal(USER, 10)
    engine.stake(USER, 10)
    clock.advance(5)
    engine.withdraw_principal(USER, 0)
    engine.set_reward_rate(OWNER, 0)
    clock.advance(100)
    assert engine.pending_rewards(USER) == 50


def test_grant_and_revoke(engine):
    assert engine.grant_role(OWNER, USER) is True
    assert engine.grant_role(OWNER, USER) is False
    assert engine.global_state().admins == (OWNER, USER)

    engine.set_reward_rate(USER, 7)
    assert engine.revoke_role(USER, OWNER) is True
    assert engine.revoke_role(USER, OWNER) is False

    with pytest.raises(Unauthorized):
        engine.pause(OWNER)
    with pytest.raises(Unauthorized):
        engine.revoke_role(USER, USER)

    names = [e.name for e in engine.events()]
    assert names == ["RoleGranted", "RateChanged", "RoleRevoked"]


def test_non_admin_cannot_grant(engine):
    with pytest.raises(Unauthorized):
        engine.grant_role(USER, USER)
    assert engine.access.has(USER, Capability.ADMIN) is False


def test_pause_is_idempotent(engine):
    assert engine.pause(OWNER) is True
    assert engine.pause(OWNER) is False
    assert engine.paused is True
    assert engine.unpause(OWNER) is True
    assert engine.unpause(OWNER) is False
    assert [e.name for e in engine.events()] == ["Paused", "Unpaused"]


def test_pause_requires_admin(engine):
    with pytest.raises(Unauthorized):
        engine.pause(USER)
    assert engine.paused is False


def test_guard_change_log_and_snapshot():
    guard = AccessGuard(OWNER)
    guard.grant(OWNER, USER, Capability.ADMIN, at=T0)
    guard.revoke(USER, OWNER, Capability.ADMIN, at=T0 + 1)

    log = [(c.actor, c.identity, c.granted, c.at) for c in guard.changes()]
    assert log == [(OWNER, OWNER, True, 0), (OWNER, USER, True, T0), (USER, OWNER, False, T0 + 1)]

    restored = AccessGuard.load(guard.dump())
    assert restored.holders(Capability.ADMIN) == [USER]
    assert restored.changes() == guard.changes()


def test_operational_controller():
    ctl = OperationalStateController()
    ctl.require_active("stake")
    assert ctl.pause() is True
    with pytest.raises(Paused) as ei:
        ctl.require_active("stake")
    assert ei.value.details == {"op": "stake"}
