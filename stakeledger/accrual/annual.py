from __future__ import annotations

"""
Annual-rate withdrawal calculator.

Independent of the emission path: the reward for withdrawing `amount` of stake
is prorated over the current staking cycle at a fixed annual rate,

    reward = amount * rate_bps * duration // (seconds_per_year * 10_000)

Integer division truncates; nothing is carried between calls.
"""

from dataclasses import dataclass

from stakeledger.config import DEFAULT_ANNUAL_RATE_BPS, DEFAULT_SECONDS_PER_YEAR

ANNUAL_RATE_BPS = DEFAULT_ANNUAL_RATE_BPS
SECONDS_PER_YEAR = DEFAULT_SECONDS_PER_YEAR
BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class AnnualQuote:
    duration: int
    reward: int


@dataclass(frozen=True)
class AnnualWithdrawalCalculator:
    rate_bps: int = ANNUAL_RATE_BPS
    seconds_per_year: int = SECONDS_PER_YEAR

    def __post_init__(self) -> None:
        if not (0 <= self.rate_bps <= BPS_DENOMINATOR):
            raise ValueError("rate_bps must be in [0, 10000]")
        if self.seconds_per_year <= 0:
            raise ValueError("seconds_per_year must be > 0")

    def quote(self, amount: int, stake_start: int, now: int) -> AnnualQuote:
        # An uninitialized cycle earns nothing on this call.
        duration = 0 if stake_start == 0 else max(0, now - stake_start)
        reward = amount * self.rate_bps * duration // (self.seconds_per_year * BPS_DENOMINATOR)
        return AnnualQuote(duration=duration, reward=reward)


__all__ = [
    "ANNUAL_RATE_BPS",
    "SECONDS_PER_YEAR",
    "BPS_DENOMINATOR",
    "AnnualQuote",
    "AnnualWithdrawalCalculator",
]
