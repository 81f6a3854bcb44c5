from __future__ import annotations

"""
stakeledger.access
==================

AccessGuard
  Per-identity capability sets with an append-only change log. The guard is
  bootstrapped with one admin; only admins may grant or revoke, and the last
  admin can never be removed.

OperationalStateController
  The suspend/resume gate. `require_active()` is called by inflow and
  stake-class operations only; withdrawals are never gated so suspending the
  engine cannot trap deposited assets.
"""

from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging

from stakeledger.errors import Paused, Unauthorized, ZeroIdentity

log = logging.getLogger(__name__)


class Capability(str, Enum):
    ADMIN = "admin"


@dataclass(frozen=True)
class RoleChange:
    """Audit entry for a capability grant or revocation."""

    seq: int
    actor: str
    identity: str
    capability: Capability
    granted: bool
    at: int

    def to_dict(self) -> Dict:
        return {
            "seq": self.seq,
            "actor": self.actor,
            "identity": self.identity,
            "capability": self.capability.value,
            "granted": self.granted,
            "at": self.at,
        }


class AccessGuard:
    def __init__(self, initial_admin: str) -> None:
        if not initial_admin:
            raise ZeroIdentity("initial admin must be set")
        self._caps: Dict[str, Set[Capability]] = {initial_admin: {Capability.ADMIN}}
        self._log: List[RoleChange] = [
            RoleChange(seq=1, actor=initial_admin, identity=initial_admin,
                       capability=Capability.ADMIN, granted=True, at=0)
        ]
        self._lock = RLock()

    # --- queries ---

    def has(self, identity: str, capability: Capability) -> bool:
        with self._lock:
            return capability in self._caps.get(identity, ())

    def require(self, identity: str, capability: Capability = Capability.ADMIN) -> None:
        if not self.has(identity, capability):
            log.debug("access: denied identity=%s capability=%s", identity, capability.value)
            raise Unauthorized(identity=identity, capability=capability.value)

    def holders(self, capability: Capability) -> List[str]:
        with self._lock:
            return sorted(i for i, caps in self._caps.items() if capability in caps)

    def changes(self) -> Tuple[RoleChange, ...]:
        with self._lock:
            return tuple(self._log)

    # --- mutations ---

    def grant(self, actor: str, identity: str, capability: Capability, *, at: int = 0) -> bool:
        """Grant `capability` to `identity`. Returns False if it was already held."""
        if not identity:
            raise ZeroIdentity()
        with self._lock:
            self.require(actor, Capability.ADMIN)
            caps = self._caps.setdefault(identity, set())
            if capability in caps:
                return False
            caps.add(capability)
            self._append(actor, identity, capability, True, at)
        log.info("access: granted identity=%s capability=%s by=%s", identity, capability.value, actor)
        return True

    def revoke(self, actor: str, identity: str, capability: Capability, *, at: int = 0) -> bool:
        """Revoke `capability` from `identity`. Returns False if it was not held."""
        with self._lock:
            self.require(actor, Capability.ADMIN)
            caps = self._caps.get(identity, set())
            if capability not in caps:
                return False
            if capability is Capability.ADMIN and len(self.holders(Capability.ADMIN)) == 1:
                raise Unauthorized(
                    identity=identity,
                    capability=capability.value,
                    message="cannot revoke the last admin",
                )
            caps.discard(capability)
            self._append(actor, identity, capability, False, at)
        log.info("access: revoked identity=%s capability=%s by=%s", identity, capability.value, actor)
        return True

    def _append(self, actor: str, identity: str, capability: Capability, granted: bool, at: int) -> None:
        self._log.append(RoleChange(seq=len(self._log) + 1, actor=actor, identity=identity,
                                    capability=capability, granted=granted, at=at))

    # --- load/save ---

    def dump(self) -> Dict:
        with self._lock:
            return {
                "capabilities": {i: sorted(c.value for c in caps) for i, caps in sorted(self._caps.items()) if caps},
                "changes": [c.to_dict() for c in self._log],
            }

    @classmethod
    def load(cls, data: Dict) -> "AccessGuard":
        caps: Dict[str, Iterable[str]] = data.get("capabilities", {})
        admins = sorted(i for i, cs in caps.items() if Capability.ADMIN.value in cs)
        if not admins:
            raise Unauthorized(message="snapshot has no admin", capability=Capability.ADMIN.value)
        guard = cls(admins[0])
        guard._caps = {i: {Capability(c) for c in cs} for i, cs in caps.items()}
        guard._log = [
            RoleChange(
                seq=int(c["seq"]),
                actor=str(c["actor"]),
                identity=str(c["identity"]),
                capability=Capability(c["capability"]),
                granted=bool(c["granted"]),
                at=int(c.get("at", 0)),
            )
            for c in data.get("changes", [])
        ] or guard._log
        return guard


class OperationalStateController:
    def __init__(self, paused: bool = False) -> None:
        self._paused = bool(paused)

    @property
    def paused(self) -> bool:
        return self._paused

    def require_active(self, op: Optional[str] = None) -> None:
        if self._paused:
            raise Paused(op=op)

    def pause(self) -> bool:
        """Suspend inflow/stake operations. Returns False if already paused."""
        if self._paused:
            return False
        self._paused = True
        return True

    def unpause(self) -> bool:
        """Resume inflow/stake operations. Returns False if already active."""
        if not self._paused:
            return False
        self._paused = False
        return True


__all__ = ["Capability", "RoleChange", "AccessGuard", "OperationalStateController"]
