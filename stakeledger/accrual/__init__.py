from __future__ import annotations
"""
stakeledger.accrual
===================

Reward calculators: the lazily committed continuous emission with exact
remainder carry, and the independent duration-prorated annual-rate formula.
Both are pure over their explicit inputs; persistence is left to the engine.
"""

from .annual import ANNUAL_RATE_BPS, SECONDS_PER_YEAR, AnnualQuote, AnnualWithdrawalCalculator
from .emission import EmissionAccrualEngine, PendingDetail

__all__ = [
    "ANNUAL_RATE_BPS",
    "SECONDS_PER_YEAR",
    "AnnualQuote",
    "AnnualWithdrawalCalculator",
    "EmissionAccrualEngine",
    "PendingDetail",
]
