from __future__ import annotations
"""
stakeledger.rpc
===============

Transport adapters over `StakingEngine`: JSON-RPC method tables and a FastAPI
REST router. FastAPI is imported lazily, only when a router or app is built.
"""

from .methods import build_rest_router, make_methods, status_for
from .mount import create_app, mount_stakeledger, register_jsonrpc

__all__ = [
    "build_rest_router",
    "make_methods",
    "status_for",
    "create_app",
    "mount_stakeledger",
    "register_jsonrpc",
]
