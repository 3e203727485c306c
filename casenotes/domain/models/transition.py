from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class EventDraft:
    """A timeline entry produced by a transition, not yet persisted."""

    type: str
    actor_user_id: int | None
    occurred_at: datetime
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T
    events: tuple[Any, ...] = ()

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Rejected:
    code: str
    reason: str

    @property
    def ok(self) -> bool:
        return False


TransitionResult = Ok | Rejected


@dataclass(frozen=True, slots=True)
class Transition:
    expected_status: str
    values: dict[str, Any]
    event: EventDraft

    @property
    def new_status(self) -> str:
        return str(self.values.get("status", self.expected_status))

    def with_values(self, **values: Any) -> Transition:
        return replace(self, values={**self.values, **values})

    def with_metadata(self, **metadata: Any) -> Transition:
        event = replace(self.event, metadata={**self.event.metadata, **metadata})
        return replace(self, event=event)
