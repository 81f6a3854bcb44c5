from __future__ import annotations

from typing import Callable

import pytest

from stakeledger.config import SCALE
from stakeledger.custody import MemoryCustody
from stakeledger.engine import ManualClock, StakingEngine

from stakeledger.tests.helpers import ASSET, OWNER, T0, UNIT


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def custody() -> MemoryCustody:
    """Custody with a large reward reserve already in the pool."""
    c = MemoryCustody()
    c.fund_pool(ASSET, 500_000 * UNIT)
    return c


@pytest.fixture
def engine(clock: ManualClock, custody: MemoryCustody) -> StakingEngine:
    """1 unit / second / staked unit emission, owner is the bootstrap admin."""
    return StakingEngine(ASSET, SCALE, OWNER, custody=custody, clock=clock)


@pytest.fixture
def fund(custody: MemoryCustody) -> Callable[..., int]:
    def _fund(holder: str, amount: int, asset: str = ASSET) -> int:
        return custody.fund_holder(holder, asset, amount)

    return _fund
