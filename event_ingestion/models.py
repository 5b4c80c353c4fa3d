from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping


@dataclass(frozen=True)
class Event:
    id: int
    source_name: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only snapshot; later changes to the caller's dict do not leak in.
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


@dataclass(frozen=True)
class SourceConfig:
    name: str
    url: str


class OutcomeState(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    LOCK_CONTENDED = "LOCK_CONTENDED"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


@dataclass
class SourceOutcome:
    source_name: str
    state: OutcomeState
    cursor_before: int | None = None
    cursor_after: int | None = None
    fetched: int = 0
    stored: int = 0
    skipped: int = 0
    replayed: int = 0
    error: str | None = None


@dataclass
class RoundStats:
    outcomes: List[SourceOutcome] = field(default_factory=list)

    def count(self, state: OutcomeState) -> int:
        return sum(1 for o in self.outcomes if o.state == state)

    @property
    def fetched(self) -> int:
        return sum(o.fetched for o in self.outcomes)

    @property
    def stored(self) -> int:
        return sum(o.stored for o in self.outcomes)

    @property
    def errors(self) -> int:
        return self.count(OutcomeState.FAILED)
