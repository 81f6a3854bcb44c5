from __future__ import annotations
# stakeledger/errors.py
"""
Error types for the staking ledger engine. Every failure is synchronous and
typed; an operation that raises one of these leaves no ledger mutation behind.
The errors are lightweight and serializable so they are safe to surface over
RPC and logs.

Exports:
- StakeLedgerError (base)
- InvalidAmount
- InsufficientIdle
- InsufficientStaked
- NothingStaked
- ZeroAsset
- ZeroIdentity
- Unauthorized
- Paused
- CustodyTransferFailed
- ReentrantCall
- EngineBusy
"""


from typing import Any, Dict, Mapping, Optional
import json


class StakeLedgerError(Exception):
    """Base class for ledger domain errors."""

    code: str = "STAKELEDGER_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"))
            except (TypeError, ValueError):
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


def _ctx(details: Optional[Mapping[str, Any]], **fields: Any) -> Dict[str, Any]:
    d = dict(details or {})
    for k, v in fields.items():
        if v is not None:
            d.setdefault(k, v)
    return d


class InvalidAmount(StakeLedgerError):
    """Amount is zero where a positive value is required, negative, or not an integer."""
    code = "INVALID_AMOUNT"

    def __init__(
        self,
        message: str = "amount must be a positive integer",
        *,
        amount: Any = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=_ctx(details, amount=None if amount is None else str(amount)))


class InsufficientIdle(StakeLedgerError):
    """Requested principal or stake exceeds the idle balance (deposited - staked)."""
    code = "INSUFFICIENT_IDLE"

    def __init__(
        self,
        *,
        requested: int,
        idle: int,
        identity: Optional[str] = None,
        message: str = "insufficient idle balance",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = _ctx(details, identity=identity)
        d.update({"requested": int(requested), "idle": int(idle)})
        super().__init__(message, details=d)


class InsufficientStaked(StakeLedgerError):
    """Unstake or annual-withdraw amount exceeds the staked balance."""
    code = "INSUFFICIENT_STAKED"

    def __init__(
        self,
        *,
        requested: int,
        staked: int,
        identity: Optional[str] = None,
        message: str = "insufficient staked balance",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = _ctx(details, identity=identity)
        d.update({"requested": int(requested), "staked": int(staked)})
        super().__init__(message, details=d)


class NothingStaked(StakeLedgerError):
    """The account has no active stake."""
    code = "NOTHING_STAKED"

    def __init__(
        self,
        *,
        identity: Optional[str] = None,
        message: str = "nothing staked",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=_ctx(details, identity=identity))


class ZeroAsset(StakeLedgerError):
    """An asset reference was null or empty."""
    code = "ZERO_ASSET"

    def __init__(self, message: str = "asset reference is empty", *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=details)


class ZeroIdentity(StakeLedgerError):
    """An identity reference was null or empty."""
    code = "ZERO_IDENTITY"

    def __init__(self, message: str = "identity reference is empty", *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=details)


class Unauthorized(StakeLedgerError):
    """Capability check failed for a privileged operation."""
    code = "UNAUTHORIZED"

    def __init__(
        self,
        *,
        identity: Optional[str] = None,
        capability: Optional[str] = None,
        message: str = "missing capability",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=_ctx(details, identity=identity, capability=capability))


class Paused(StakeLedgerError):
    """An inflow or stake-class operation was attempted while the engine is suspended."""
    code = "PAUSED"

    def __init__(
        self,
        *,
        op: Optional[str] = None,
        message: str = "engine is paused",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=_ctx(details, op=op))


class CustodyTransferFailed(StakeLedgerError):
    """The external asset transfer could not be completed."""
    code = "CUSTODY_TRANSFER_FAILED"

    def __init__(
        self,
        message: str = "custody transfer failed",
        *,
        direction: Optional[str] = None,
        asset: Optional[str] = None,
        holder: Optional[str] = None,
        amount: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            details=_ctx(details, direction=direction, asset=asset, holder=holder, amount=amount),
        )


class ReentrantCall(StakeLedgerError):
    """A mutating entry point was invoked while another one is still running on the same thread."""
    code = "REENTRANT_CALL"

    def __init__(
        self,
        *,
        op: Optional[str] = None,
        active: Optional[str] = None,
        message: str = "re-entrant call rejected",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=_ctx(details, op=op, active=active))


class EngineBusy(StakeLedgerError):
    """The engine lock could not be acquired within the configured `lock_timeout`."""
    code = "ENGINE_BUSY"

    def __init__(
        self,
        *,
        op: Optional[str] = None,
        active: Optional[str] = None,
        timeout: Optional[float] = None,
        message: str = "engine is busy",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=_ctx(details, op=op, active=active, timeout=timeout))


__all__ = [
    "StakeLedgerError",
    "InvalidAmount",
    "InsufficientIdle",
    "InsufficientStaked",
    "NothingStaked",
    "ZeroAsset",
    "ZeroIdentity",
    "Unauthorized",
    "Paused",
    "CustodyTransferFailed",
    "ReentrantCall",
    "EngineBusy",
]
