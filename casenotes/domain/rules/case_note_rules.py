from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Any

from casenotes.domain.constants import (
    CLOSED_STATUSES,
    HOLDABLE_STATUSES,
    CustodyStatus,
    EventType,
    RequestStatus,
)
from casenotes.domain.models.case_note import ActorRef, CaseNoteState
from casenotes.domain.models.transition import EventDraft, Ok, Rejected, Transition

_STATUS_GRAPH: dict[str, frozenset[str]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(
        {
            RequestStatus.IN_PROGRESS,
            RequestStatus.COMPLETED,
            RequestStatus.PENDING_RETURN_VERIFICATION,
        }
    ),
    RequestStatus.IN_PROGRESS: frozenset(
        {RequestStatus.COMPLETED, RequestStatus.PENDING_RETURN_VERIFICATION}
    ),
    RequestStatus.PENDING_RETURN_VERIFICATION: frozenset(
        {RequestStatus.APPROVED, RequestStatus.COMPLETED}
    ),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


def is_legal_status_change(from_status: str, to_status: str) -> bool:
    return to_status in _STATUS_GRAPH.get(from_status, frozenset())


def _illegal(note: CaseNoteState, action: str) -> Rejected:
    return Rejected("illegal_transition", f"Cannot {action} case note {note.request_number} in status '{note.status}'")


def _status_event(
    event_type: EventType,
    note: CaseNoteState,
    actor: ActorRef,
    now: datetime,
    new_status: str,
    *,
    reason: str | None = None,
    **extra: Any,
) -> EventDraft:
    metadata: dict[str, Any] = {
        "request_number": note.request_number,
        "old_status": note.status,
        "new_status": new_status,
        "actor_name": actor.name,
    }
    metadata.update({key: value for key, value in extra.items() if value is not None})
    return EventDraft(
        type=event_type.value,
        actor_user_id=actor.id,
        occurred_at=now,
        reason=reason,
        metadata=metadata,
    )


def plan_approve(
    note: CaseNoteState, actor: ActorRef, *, now: datetime, remarks: str | None = None
) -> Transition | Rejected:
    if note.status != RequestStatus.PENDING:
        return _illegal(note, "approve")
    new_status = RequestStatus.APPROVED.value
    return Transition(
        expected_status=note.status,
        values={
            "status": new_status,
            "approved_at": now,
            "approved_by_user_id": actor.id,
            "approval_remarks": remarks,
        },
        event=_status_event(EventType.APPROVED, note, actor, now, new_status, remarks=remarks),
    )


def plan_reject(note: CaseNoteState, actor: ActorRef, *, now: datetime, reason: str) -> Transition | Rejected:
    if note.status != RequestStatus.PENDING:
        return _illegal(note, "reject")
    new_status = RequestStatus.REJECTED.value
    return Transition(
        expected_status=note.status,
        values={
            "status": new_status,
            "rejection_reason": reason,
            "rejected_at": now,
            "rejected_by_user_id": actor.id,
        },
        event=_status_event(EventType.REJECTED, note, actor, now, new_status, reason=reason),
    )


def plan_start_progress(note: CaseNoteState, actor: ActorRef, *, now: datetime) -> Transition | Rejected:
    if note.status != RequestStatus.APPROVED:
        return _illegal(note, "start progress on")
    new_status = RequestStatus.IN_PROGRESS.value
    return Transition(
        expected_status=note.status,
        values={"status": new_status},
        event=_status_event(EventType.IN_PROGRESS, note, actor, now, new_status),
    )


def plan_complete(note: CaseNoteState, actor: ActorRef, *, now: datetime) -> Transition | Rejected:
    if note.status not in HOLDABLE_STATUSES:
        return _illegal(note, "complete")
    if note.has_transfer_in_flight:
        return Rejected("transfer_in_flight", f"Case note {note.request_number} has a custody transfer in flight")
    new_status = RequestStatus.COMPLETED.value
    return Transition(
        expected_status=note.status,
        values={"status": new_status, "completed_at": now, "completed_by_user_id": actor.id},
        event=_status_event(EventType.COMPLETED, note, actor, now, new_status),
    )


def plan_mark_received(
    note: CaseNoteState, actor: ActorRef, *, now: datetime, notes: str | None = None
) -> Transition | Rejected:
    if note.status != RequestStatus.APPROVED:
        return _illegal(note, "mark as received")
    if note.is_received:
        return Rejected("already_received", f"Case note {note.request_number} is already received")
    return Transition(
        expected_status=note.status,
        values={
            "is_received": True,
            "received_at": now,
            "received_by_user_id": actor.id,
            "received_notes": notes,
        },
        event=_status_event(EventType.RECEIVED, note, actor, now, note.status, notes=notes),
    )


def can_be_returned_by(note: CaseNoteState, user_id: int) -> bool:
    return (
        note.status in HOLDABLE_STATUSES
        and note.is_received
        and (not note.is_returned or note.is_rejected_return)
        and note.current_pic_user_id == user_id
    )


def plan_return(
    note: CaseNoteState, actor: ActorRef, *, now: datetime, notes: str | None = None
) -> Transition | Rejected:
    if note.status not in HOLDABLE_STATUSES:
        return _illegal(note, "return")
    if not note.is_received:
        return Rejected("not_received", f"Case note {note.request_number} was never received")
    if note.is_returned and not note.is_rejected_return:
        return Rejected("already_returned", f"Case note {note.request_number} is already returned")
    if note.current_pic_user_id != actor.id:
        return Rejected("not_holder", f"User {actor.id} does not hold case note {note.request_number}")
    if note.has_transfer_in_flight:
        return Rejected("transfer_in_flight", f"Case note {note.request_number} has a custody transfer in flight")
    new_status = RequestStatus.PENDING_RETURN_VERIFICATION.value
    return Transition(
        expected_status=note.status,
        values={
            "status": new_status,
            "is_returned": True,
            "returned_at": now,
            "returned_by_user_id": actor.id,
            "return_notes": notes,
        },
        event=_status_event(
            EventType.RETURNED,
            note,
            actor,
            now,
            new_status,
            notes=notes,
            is_re_return=note.is_rejected_return or None,
        ),
    )


def plan_verify_return(
    note: CaseNoteState, actor: ActorRef, *, now: datetime, notes: str | None = None
) -> Transition | Rejected:
    if note.status != RequestStatus.PENDING_RETURN_VERIFICATION:
        return _illegal(note, "verify the return of")
    new_status = RequestStatus.COMPLETED.value
    return Transition(
        expected_status=note.status,
        values={
            "status": new_status,
            "is_rejected_return": False,
            "return_verified_at": now,
            "return_verified_by_user_id": actor.id,
            "current_pic_user_id": None,
            "completed_at": now,
            "completed_by_user_id": actor.id,
        },
        event=_status_event(
            EventType.RETURNED_VERIFIED,
            note,
            actor,
            now,
            new_status,
            notes=notes,
            returned_by_user_id=note.current_pic_user_id,
        ),
    )


def plan_reject_return(note: CaseNoteState, actor: ActorRef, *, now: datetime, reason: str) -> Transition | Rejected:
    if note.status != RequestStatus.PENDING_RETURN_VERIFICATION:
        return _illegal(note, "reject the return of")
    new_status = RequestStatus.APPROVED.value
    return Transition(
        expected_status=note.status,
        values={
            "status": new_status,
            "is_returned": False,
            "is_rejected_return": True,
            "return_rejection_reason": reason,
            "return_rejected_at": now,
            "return_rejected_by_user_id": actor.id,
        },
        event=_status_event(EventType.RETURNED_REJECTED, note, actor, now, new_status, reason=reason),
    )


def is_overdue(needed_date: date | None, status: str, today: date) -> bool:
    if needed_date is None:
        return False
    return needed_date < today and status not in CLOSED_STATUSES


def days_to_complete(created_at: datetime | None, completed_at: datetime | None) -> int | None:
    if created_at is None or completed_at is None:
        return None
    return (completed_at - created_at).days


def consistency_violations(note: CaseNoteState) -> list[str]:
    violations: list[str] = []
    if note.status not in _STATUS_GRAPH:
        violations.append(f"unknown status '{note.status}'")
    if note.is_returned and note.status not in {
        RequestStatus.PENDING_RETURN_VERIFICATION,
        RequestStatus.COMPLETED,
    }:
        violations.append(f"is_returned with status '{note.status}'")
    if note.status == RequestStatus.PENDING_RETURN_VERIFICATION and not note.is_returned:
        violations.append("pending return verification without is_returned")
    if note.is_received and note.status in {RequestStatus.PENDING, RequestStatus.REJECTED}:
        violations.append(f"is_received with status '{note.status}'")
    if note.is_rejected_return and note.status not in {
        RequestStatus.APPROVED,
        RequestStatus.PENDING_RETURN_VERIFICATION,
    }:
        violations.append(f"is_rejected_return with status '{note.status}'")
    handover_open = note.handover_status in {CustodyStatus.PENDING, CustodyStatus.ACKNOWLEDGED}
    if handover_open != (note.current_handover_id is not None):
        violations.append(
            f"handover_status '{note.handover_status}' disagrees with current_handover_id={note.current_handover_id}"
        )
    if len(note.transfers_in_flight) > 1:
        violations.append("two custody transfers in flight")
    return violations


# Event types that move the primary status: type -> (allowed prior statuses, resulting status)
_STATUS_EVENTS: dict[str, tuple[frozenset[str | None], str]] = {
    EventType.CREATED: (frozenset({None}), RequestStatus.PENDING),
    EventType.APPROVED: (frozenset({RequestStatus.PENDING}), RequestStatus.APPROVED),
    EventType.REJECTED: (frozenset({RequestStatus.PENDING}), RequestStatus.REJECTED),
    EventType.IN_PROGRESS: (frozenset({RequestStatus.APPROVED}), RequestStatus.IN_PROGRESS),
    EventType.COMPLETED: (frozenset(HOLDABLE_STATUSES), RequestStatus.COMPLETED),
    EventType.RETURNED: (frozenset(HOLDABLE_STATUSES), RequestStatus.PENDING_RETURN_VERIFICATION),
    EventType.RETURNED_VERIFIED: (
        frozenset({RequestStatus.PENDING_RETURN_VERIFICATION}),
        RequestStatus.COMPLETED,
    ),
    EventType.RETURNED_REJECTED: (
        frozenset({RequestStatus.PENDING_RETURN_VERIFICATION}),
        RequestStatus.APPROVED,
    ),
}

# Event types that leave the status alone but only make sense in some statuses
_CUSTODY_EVENTS: dict[str, frozenset[str]] = {
    EventType.RECEIVED: frozenset({RequestStatus.APPROVED}),
    EventType.VERIFIED_RECEIVED: frozenset({RequestStatus.APPROVED}),
    EventType.HANDED_OVER: frozenset(HOLDABLE_STATUSES),
    EventType.HANDOVER_ACKNOWLEDGED: frozenset(HOLDABLE_STATUSES),
    EventType.HANDOVER_COMPLETED: frozenset(HOLDABLE_STATUSES),
    EventType.HANDOVER_REQUESTED: frozenset(HOLDABLE_STATUSES),
    EventType.HANDOVER_APPROVED: frozenset(HOLDABLE_STATUSES),
    EventType.HANDOVER_REJECTED: frozenset(HOLDABLE_STATUSES),
    EventType.HANDOVER_VERIFIED: frozenset(HOLDABLE_STATUSES),
    EventType.SENT_OUT: frozenset({RequestStatus.APPROVED}),
    EventType.SEND_OUT_ACKNOWLEDGED: frozenset(HOLDABLE_STATUSES),
    EventType.SEND_OUT_CANCELLED: frozenset(HOLDABLE_STATUSES),
}


def replay_status_history(events: Iterable[Any]) -> Ok[list[str]] | Rejected:
    """Rebuild the status sequence from timeline events.

    ``events`` are objects with ``type`` and ``occurred_at`` attributes; they are
    ordered by ``occurred_at`` (then ``id`` when present) before replay.
    """
    ordered: Sequence[Any] = sorted(events, key=lambda e: (e.occurred_at, getattr(e, "id", 0) or 0))
    status: str | None = None
    history: list[str] = []
    for position, event in enumerate(ordered):
        event_type = str(event.type)
        if event_type in _STATUS_EVENTS:
            allowed, target = _STATUS_EVENTS[event_type]
            if status not in allowed:
                return Rejected(
                    "impossible_history",
                    f"event #{position} '{event_type}' cannot follow status '{status}'",
                )
            status = str(target)
            history.append(status)
            continue
        if status is None:
            return Rejected("impossible_history", f"event #{position} '{event_type}' precedes creation")
        required = _CUSTODY_EVENTS.get(event_type)
        if required is not None and status not in required:
            return Rejected(
                "impossible_history",
                f"event #{position} '{event_type}' cannot occur in status '{status}'",
            )
    return Ok(history)
