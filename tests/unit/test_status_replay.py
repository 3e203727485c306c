from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from casenotes.domain.models.transition import Ok, Rejected
from casenotes.domain.rules.case_note_rules import replay_status_history

START = datetime(2025, 3, 14, 9, 0)


@dataclass
class _Event:
    id: int
    type: str
    occurred_at: datetime


def _events(*types: str) -> list[_Event]:
    return [_Event(id=i + 1, type=t, occurred_at=START + timedelta(minutes=i)) for i, t in enumerate(types)]


def test_replay_full_return_loop() -> None:
    result = replay_status_history(
        _events(
            "created",
            "approved",
            "received",
            "handed_over",
            "handover_acknowledged",
            "handover_completed",
            "returned",
            "returned_rejected",
            "returned",
            "returned_verified",
            "filing_submitted",
        )
    )

    assert isinstance(result, Ok)
    assert result.value == [
        "pending",
        "approved",
        "pending_return_verification",
        "approved",
        "pending_return_verification",
        "completed",
    ]


def test_replay_orders_by_occurred_at_not_insert_order() -> None:
    created, approved = _events("created", "approved")
    result = replay_status_history([approved, created])
    assert isinstance(result, Ok)
    assert result.value == ["pending", "approved"]


def test_replay_uses_id_to_break_timestamp_ties() -> None:
    events = [
        _Event(id=2, type="approved", occurred_at=START),
        _Event(id=1, type="created", occurred_at=START),
    ]
    result = replay_status_history(events)
    assert isinstance(result, Ok)


def test_replay_rejects_impossible_histories() -> None:
    impossible = [
        _events("approved"),
        _events("created", "completed"),
        _events("created", "rejected", "approved"),
        _events("created", "approved", "approved"),
        _events("created", "received"),
        _events("created", "approved", "returned_verified"),
        _events("created", "sent_out"),
        _events("created", "approved", "completed", "acknowledged_received"),
        _events("received", "created"),
    ]
    for events in impossible:
        result = replay_status_history(events)
        assert isinstance(result, Rejected), [e.type for e in events]
        assert result.code == "impossible_history"


def test_replay_of_nothing_is_empty() -> None:
    result = replay_status_history([])
    assert isinstance(result, Ok)
    assert result.value == []
