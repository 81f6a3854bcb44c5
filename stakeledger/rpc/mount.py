from __future__ import annotations

"""
stakeledger.rpc.mount
---------------------

Helpers to mount the staking REST surface into an existing FastAPI app, to
build a standalone app, and/or to register the JSON-RPC methods with your
dispatcher.

Typical usage (REST):
    from fastapi import FastAPI
    from stakeledger.rpc.mount import mount_stakeledger
    app = FastAPI()
    mount_stakeledger(app, engine, prefix="/staking")

Typical usage (JSON-RPC):
    from stakeledger.rpc.mount import register_jsonrpc
    register_jsonrpc(dispatcher, engine)
"""

from typing import Any, Optional, Protocol

from stakeledger import metrics
from stakeledger.engine import StakingEngine

from .methods import build_rest_router, make_methods


class _JsonRpcDispatcherLike(Protocol):
    """Minimal protocol to support common JSON-RPC dispatchers."""
    def add(self, method: str, func: Any) -> None: ...
    def register(self, method: str, func: Any) -> None: ...


def mount_stakeledger(app: Any, engine: StakingEngine, *, prefix: str = "") -> None:
    """
    Mount the staking REST endpoints under `prefix` on a FastAPI app.
    """
    app.include_router(build_rest_router(engine), prefix=prefix, tags=["staking"])


def create_app(engine: Optional[StakingEngine] = None, *, prefix: str = "", with_metrics: bool = True):
    """
    Build a standalone FastAPI app serving the engine (and /metrics).

    Without an explicit engine, one is built from `stakeledger.config.load()`.
    """
    from fastapi import FastAPI

    if engine is None:
        from stakeledger import config

        engine = StakingEngine.from_config(config.load())

    app = FastAPI(title="stakeledger")
    app.state.engine = engine
    mount_stakeledger(app, engine, prefix=prefix)
    if with_metrics:
        metrics.mount_fastapi(app)
    return app


def register_jsonrpc(dispatcher: _JsonRpcDispatcherLike, engine: StakingEngine) -> None:
    """
    Register JSON-RPC methods on a dispatcher.

    We try `.add(name, fn)` first and fall back to `.register(name, fn)`.
    """
    for name, fn in make_methods(engine).items():
        try:
            dispatcher.add(name, fn)  # type: ignore[attr-defined]
        except AttributeError:
            dispatcher.register(name, fn)  # type: ignore[attr-defined]


__all__ = ["mount_stakeledger", "create_app", "register_jsonrpc"]
