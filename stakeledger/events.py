from __future__ import annotations

"""
Ledger event records
--------------------

Immutable records emitted by the engine for external consumers and analytics.
An operation buffers its records while it runs; they are appended to the
`EventLog` right after the operation's ledger writes are applied, under the
same lock, so a failed operation never publishes anything and sequence numbers
match the order in which operations committed.

Usage
~~~~~
>>> elog = EventLog()
>>> elog.subscribe(lambda seq, ev: print(seq, ev.name))
>>> _ = elog.publish([Staked(identity="alice", amount=10)])
1 Staked
"""

from dataclasses import asdict, dataclass
from threading import RLock
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Tuple
import logging

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    name: ClassVar[str] = "LedgerEvent"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["event"] = self.name
        return d


@dataclass(frozen=True)
class AccrualRecorded(LedgerEvent):
    name: ClassVar[str] = "AccrualRecorded"
    identity: str
    amount: int


@dataclass(frozen=True)
class PrincipalDeposited(LedgerEvent):
    name: ClassVar[str] = "PrincipalDeposited"
    identity: str
    amount: int


@dataclass(frozen=True)
class GenericDeposited(LedgerEvent):
    name: ClassVar[str] = "GenericDeposited"
    identity: str
    asset: str
    amount: int


@dataclass(frozen=True)
class Staked(LedgerEvent):
    name: ClassVar[str] = "Staked"
    identity: str
    amount: int


@dataclass(frozen=True)
class Unstaked(LedgerEvent):
    name: ClassVar[str] = "Unstaked"
    identity: str
    amount: int


@dataclass(frozen=True)
class Withdrawn(LedgerEvent):
    name: ClassVar[str] = "Withdrawn"
    identity: str
    principal: int
    rewards: int


@dataclass(frozen=True)
class AnnualWithdrawn(LedgerEvent):
    name: ClassVar[str] = "AnnualWithdrawn"
    identity: str
    principal: int
    rewards: int


@dataclass(frozen=True)
class RateChanged(LedgerEvent):
    name: ClassVar[str] = "RateChanged"
    old: int
    new: int


@dataclass(frozen=True)
class Paused(LedgerEvent):
    name: ClassVar[str] = "Paused"


@dataclass(frozen=True)
class Unpaused(LedgerEvent):
    name: ClassVar[str] = "Unpaused"


@dataclass(frozen=True)
class RoleGranted(LedgerEvent):
    name: ClassVar[str] = "RoleGranted"
    identity: str
    capability: str
    actor: str


@dataclass(frozen=True)
class RoleRevoked(LedgerEvent):
    name: ClassVar[str] = "RoleRevoked"
    identity: str
    capability: str
    actor: str


Subscriber = Callable[[int, LedgerEvent], None]


class EventLog:
    """
    Append-only, in-memory record of published events with subscriber fan-out.

    The engine calls `append` while it still holds its lock, so sequence
    numbers follow commit order, and `notify` after releasing it. Subscribers
    therefore run after the ledger write; an exception raised by a subscriber
    is logged and does not affect the ledger or other subscribers.
    """

    def __init__(self) -> None:
        self._records: List[Tuple[int, LedgerEvent]] = []
        self._subscribers: List[Subscriber] = []
        self._lock = RLock()

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def append(self, events: Iterable[LedgerEvent]) -> List[Tuple[int, LedgerEvent]]:
        """Assign sequence numbers and record `events` without notifying anyone."""
        out: List[Tuple[int, LedgerEvent]] = []
        with self._lock:
            for ev in events:
                seq = len(self._records) + 1
                self._records.append((seq, ev))
                out.append((seq, ev))
        return out

    def notify(self, records: Iterable[Tuple[int, LedgerEvent]]) -> None:
        """Fan already-appended records out to the current subscribers."""
        with self._lock:
            subscribers = list(self._subscribers)
        for seq, ev in records:
            for cb in subscribers:
                try:
                    cb(seq, ev)
                except Exception:
                    log.exception("events: subscriber failed seq=%d event=%s", seq, ev.name)

    def publish(self, events: Iterable[LedgerEvent]) -> List[Tuple[int, LedgerEvent]]:
        out = self.append(events)
        self.notify(out)
        return out

    def records(self) -> Tuple[Tuple[int, LedgerEvent], ...]:
        with self._lock:
            return tuple(self._records)

    def events(self) -> Tuple[LedgerEvent, ...]:
        with self._lock:
            return tuple(ev for _, ev in self._records)

    def __len__(self) -> int:
        return len(self._records)


__all__ = [
    "LedgerEvent",
    "AccrualRecorded",
    "PrincipalDeposited",
    "GenericDeposited",
    "Staked",
    "Unstaked",
    "Withdrawn",
    "AnnualWithdrawn",
    "RateChanged",
    "Paused",
    "Unpaused",
    "RoleGranted",
    "RoleRevoked",
    "EventLog",
]
