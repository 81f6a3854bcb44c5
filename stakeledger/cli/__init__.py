from __future__ import annotations
"""
stakeledger.cli
===============

Command-line tools. `python -m stakeledger.cli.inspect --help`.
"""

__all__ = ["inspect"]
