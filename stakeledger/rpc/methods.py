from __future__ import annotations

"""
stakeledger.rpc.methods
-----------------------

JSON-RPC style method implementations over a `StakingEngine`.

Exposed methods (bind via `make_methods`):
  • staking.getBalance
  • staking.getAccount
  • staking.pendingRewards
  • staking.getGlobalState
  • staking.deposit
  • staking.stake
  • staking.unstake
  • staking.withdraw            (annual-rate path)
  • staking.withdrawPrincipal   (principal + optional emission claim)

Design:
  - Transport-agnostic: `make_methods` returns a dict of callables that a
    JSON-RPC dispatcher can register; `build_rest_router` exposes the same
    callables as FastAPI REST endpoints.
  - Amounts are accepted as ints or decimal strings and returned as decimal
    strings, since they routinely exceed the 53-bit range of JSON numbers.
  - The caller identity is taken from the request; authentication is the
    responsibility of the transport in front of this module.

Usage:
    from stakeledger.rpc.methods import make_methods
    methods = make_methods(engine)
    dispatcher.register_many(methods)
"""

from typing import Any, Callable, Dict, Optional

from stakeledger.engine import StakingEngine
from stakeledger.errors import (
    CustodyTransferFailed,
    EngineBusy,
    InvalidAmount,
    Paused,
    ReentrantCall,
    StakeLedgerError,
    Unauthorized,
    ZeroIdentity,
)


# ---- Helpers ---------------------------------------------------------------

def _coerce_amount(value: Any, name: str) -> int:
    if value is None or value == "":
        raise InvalidAmount(f"{name} is required")
    if isinstance(value, bool):
        raise InvalidAmount(f"invalid {name}: must be an integer", amount=value)
    try:
        iv = int(str(value).strip())
    except ValueError as e:
        raise InvalidAmount(f"invalid {name}: must be an integer", amount=value) from e
    if iv < 0:
        raise InvalidAmount(f"invalid {name}: must be non-negative", amount=value)
    return iv


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _require_identity(identity: Optional[str]) -> str:
    if not identity:
        raise ZeroIdentity("identity is required")
    return str(identity)


def status_for(err: StakeLedgerError) -> int:
    """HTTP status for a ledger error."""
    if isinstance(err, Unauthorized):
        return 403
    if isinstance(err, (Paused, ReentrantCall, EngineBusy)):
        return 409
    if isinstance(err, CustodyTransferFailed):
        return 502
    return 400


# ---- JSON-RPC method factory ----------------------------------------------

def make_methods(engine: StakingEngine) -> Dict[str, Callable[..., Any]]:
    """
    Build a mapping of JSON-RPC method name -> callable.
    Each callable returns plain JSON-serializable structures.
    """

    def get_balance(*, identity: str) -> Dict[str, Any]:
        who = _require_identity(identity)
        acct = engine.get_account(who)
        return {
            "deposited": str(acct.deposited),
            "staked": str(acct.staked),
            "rewards": str(engine.pending_rewards(who)),
        }

    def get_account(*, identity: str) -> Dict[str, Any]:
        who = _require_identity(identity)
        acct = engine.get_account(who)
        detail = engine.pending_rewards_detailed(who)
        out: Dict[str, Any] = {k: str(v) for k, v in acct.snapshot().items()}
        out["identity"] = who
        out["pending"] = {
            "total": str(detail.total),
            "newPortion": str(detail.new_portion),
            "remainder": str(detail.remainder),
        }
        return out

    def pending_rewards(*, identity: str) -> Dict[str, Any]:
        who = _require_identity(identity)
        return {"identity": who, "pending": str(engine.pending_rewards(who))}

    def get_global_state() -> Dict[str, Any]:
        state = engine.global_state().to_dict()
        state["reward_rate"] = str(state["reward_rate"])
        state["total_staked"] = str(state["total_staked"])
        return state

    def deposit(*, identity: str, amount: Any, asset: Optional[str] = None) -> Dict[str, Any]:
        who = _require_identity(identity)
        amt = _coerce_amount(amount, "amount")
        if asset and asset != engine.asset:
            engine.deposit_generic(who, asset, amt)
            return {"identity": who, "asset": asset, "amount": str(amt)}
        acct = engine.deposit_principal(who, amt)
        return {"identity": who, "asset": engine.asset, "amount": str(amt), "deposited": str(acct.deposited)}

    def stake(*, identity: str, amount: Any) -> Dict[str, Any]:
        who = _require_identity(identity)
        acct = engine.stake(who, _coerce_amount(amount, "amount"))
        return {"identity": who, "staked": str(acct.staked), "stakeStart": acct.stake_start}

    def unstake(*, identity: str, amount: Any) -> Dict[str, Any]:
        who = _require_identity(identity)
        acct = engine.unstake(who, _coerce_amount(amount, "amount"))
        return {"identity": who, "staked": str(acct.staked), "stakeStart": acct.stake_start}

    def withdraw(*, identity: str, amount: Any) -> Dict[str, Any]:
        who = _require_identity(identity)
        receipt = engine.withdraw_annual(who, _coerce_amount(amount, "amount"))
        return {
            "identity": who,
            "withdrawn": str(receipt.principal),
            "rewards": str(receipt.rewards),
            "duration": receipt.duration,
        }

    def withdraw_principal(*, identity: str, principal: Any, claim_rewards: Any = False) -> Dict[str, Any]:
        who = _require_identity(identity)
        receipt = engine.withdraw_principal(
            who, _coerce_amount(principal, "principal"), _coerce_bool(claim_rewards)
        )
        return {
            "identity": who,
            "principal": str(receipt.principal),
            "rewards": str(receipt.rewards),
            "payout": str(receipt.payout),
        }

    return {
        "staking.getBalance": get_balance,
        "staking.getAccount": get_account,
        "staking.pendingRewards": pending_rewards,
        "staking.getGlobalState": get_global_state,
        "staking.deposit": deposit,
        "staking.stake": stake,
        "staking.unstake": unstake,
        "staking.withdraw": withdraw,
        "staking.withdrawPrincipal": withdraw_principal,
    }


# ---- REST adapter (FastAPI) -------------------------------------------------

def build_rest_router(engine: StakingEngine):
    """
    Return a FastAPI APIRouter exposing the engine over REST.
    """
    from fastapi import APIRouter, Body, HTTPException

    router = APIRouter()
    methods = make_methods(engine)

    def call(name: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            return methods[name](**kwargs)
        except StakeLedgerError as e:
            raise HTTPException(status_code=status_for(e), detail=e.to_dict()) from e

    @router.get("/health")
    def http_health():
        return {"status": "ok"}

    @router.get("/state")
    def http_state():
        return call("staking.getGlobalState")

    @router.get("/balance/{identity}")
    def http_balance(identity: str):
        return call("staking.getBalance", identity=identity)

    @router.get("/accounts/{identity}")
    def http_account(identity: str):
        return call("staking.getAccount", identity=identity)

    @router.post("/deposit")
    def http_deposit(payload: Dict[str, Any] = Body(...)):
        return call(
            "staking.deposit",
            identity=payload.get("identity"),
            amount=payload.get("amount"),
            asset=payload.get("asset"),
        )

    @router.post("/stake")
    def http_stake(payload: Dict[str, Any] = Body(...)):
        return call("staking.stake", identity=payload.get("identity"), amount=payload.get("amount"))

    @router.post("/unstake")
    def http_unstake(payload: Dict[str, Any] = Body(...)):
        return call("staking.unstake", identity=payload.get("identity"), amount=payload.get("amount"))

    @router.post("/withdraw")
    def http_withdraw(payload: Dict[str, Any] = Body(...)):
        return call("staking.withdraw", identity=payload.get("identity"), amount=payload.get("amount"))

    @router.post("/withdraw/principal")
    def http_withdraw_principal(payload: Dict[str, Any] = Body(...)):
        return call(
            "staking.withdrawPrincipal",
            identity=payload.get("identity"),
            principal=payload.get("principal", 0),
            claim_rewards=payload.get("claim_rewards", False),
        )

    return router


__all__ = ["make_methods", "build_rest_router", "status_for"]
