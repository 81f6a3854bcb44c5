from __future__ import annotations
"""
stakeledger - custody and staking ledger engine for a single principal asset.

Depositors place principal in custody, move a subset "at stake" to earn a
continuously accruing emission, and withdraw principal, accrued emission, or a
duration-prorated annual reward. Submodules are lazily imported to keep import
time minimal.

Public surface (lazily loaded):
- config, errors, events, metrics
- ledger, accrual, custody, access, engine
- rpc, cli
"""


from typing import List

__version__ = "0.1.0"

__all__: List[str] = [
    "__version__",
    "config",
    "errors",
    "events",
    "metrics",
    "ledger",
    "accrual",
    "custody",
    "access",
    "engine",
    "rpc",
    "cli",
]

# --- Lazy module loader (PEP 562) -------------------------------------------------
import importlib


_lazy_modules = set(__all__) - {"__version__"}


def __getattr__(name: str):
    if name in _lazy_modules:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals().keys()) | _lazy_modules)


def get_version() -> str:
    """Return the stakeledger package version string."""
    return __version__
