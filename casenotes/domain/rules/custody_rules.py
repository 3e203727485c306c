from __future__ import annotations

from datetime import datetime
from typing import Any

from casenotes.domain.constants import (
    HOLDABLE_STATUSES,
    CustodyStatus,
    EventType,
    HandoverRequestStatus,
    HandoverStatus,
    RequestStatus,
    SendOutStatus,
)
from casenotes.domain.models.case_note import (
    ActorRef,
    CaseNoteState,
    HandoverRequestState,
    HandoverState,
    SendOutState,
)
from casenotes.domain.models.transition import EventDraft, Rejected, Transition


def _custody_event(
    event_type: EventType,
    note: CaseNoteState,
    actor: ActorRef,
    now: datetime,
    *,
    reason: str | None = None,
    **extra: Any,
) -> EventDraft:
    metadata: dict[str, Any] = {
        "request_number": note.request_number,
        "status": note.status,
        "actor_name": actor.name,
        "previous_pic_user_id": note.current_pic_user_id,
    }
    metadata.update({key: value for key, value in extra.items() if value is not None})
    return EventDraft(type=event_type.value, actor_user_id=actor.id, occurred_at=now, reason=reason, metadata=metadata)


def _holdable_guard(note: CaseNoteState) -> Rejected | None:
    if note.status not in HOLDABLE_STATUSES:
        return Rejected(
            "illegal_transition",
            f"Custody of case note {note.request_number} cannot change in status '{note.status}'",
        )
    if not note.is_received:
        return Rejected("not_received", f"Case note {note.request_number} was never received")
    if note.has_transfer_in_flight:
        return Rejected("transfer_in_flight", f"Case note {note.request_number} has a custody transfer in flight")
    return None


def plan_offer_handover(
    note: CaseNoteState,
    actor: ActorRef,
    *,
    to_user_id: int,
    now: datetime,
    reason: str | None = None,
) -> Transition | Rejected:
    rejected = _holdable_guard(note)
    if rejected is not None:
        return rejected
    if actor.id not in {note.current_pic_user_id, note.requested_by_user_id}:
        return Rejected("not_holder", f"User {actor.id} cannot hand over case note {note.request_number}")
    if to_user_id == note.current_pic_user_id:
        return Rejected("same_holder", f"User {to_user_id} already holds case note {note.request_number}")
    return Transition(
        expected_status=note.status,
        values={"handover_status": CustodyStatus.PENDING.value},
        event=_custody_event(
            EventType.HANDED_OVER,
            note,
            actor,
            now,
            reason=reason,
            handed_over_to_user_id=to_user_id,
        ),
    )


def plan_acknowledge_handover(
    handover: HandoverState,
    note: CaseNoteState,
    actor: ActorRef,
    *,
    now: datetime,
    notes: str | None = None,
) -> Transition | Rejected:
    if handover.status != HandoverStatus.PENDING:
        return Rejected("illegal_transition", f"Handover {handover.id} is '{handover.status}', not pending")
    if actor.id != handover.handed_over_to_user_id:
        return Rejected("not_recipient", f"Only the recipient can acknowledge handover {handover.id}")
    if note.current_handover_id != handover.id:
        return Rejected("stale_handover", f"Handover {handover.id} is no longer current for {note.request_number}")
    return Transition(
        expected_status=note.status,
        values={"handover_status": CustodyStatus.ACKNOWLEDGED.value},
        event=_custody_event(
            EventType.HANDOVER_ACKNOWLEDGED,
            note,
            actor,
            now,
            handover_id=handover.id,
            notes=notes,
        ),
    )


def plan_complete_handover(
    handover: HandoverState,
    note: CaseNoteState,
    actor: ActorRef,
    *,
    now: datetime,
) -> Transition | Rejected:
    if handover.status != HandoverStatus.ACKNOWLEDGE:
        return Rejected("illegal_transition", f"Handover {handover.id} is '{handover.status}', not acknowledged")
    if actor.id != handover.handed_over_to_user_id:
        return Rejected("not_recipient", f"Only the recipient can complete handover {handover.id}")
    if note.current_handover_id != handover.id:
        return Rejected("stale_handover", f"Handover {handover.id} is no longer current for {note.request_number}")
    return Transition(
        expected_status=note.status,
        values={
            "current_pic_user_id": handover.handed_over_to_user_id,
            "current_handover_id": None,
            "handover_status": CustodyStatus.COMPLETED.value,
        },
        event=_custody_event(
            EventType.HANDOVER_COMPLETED,
            note,
            actor,
            now,
            handover_id=handover.id,
            new_pic_user_id=handover.handed_over_to_user_id,
        ),
    )


def plan_request_handover(
    note: CaseNoteState,
    actor: ActorRef,
    *,
    now: datetime,
    reason: str | None = None,
    priority: str | None = None,
) -> Transition | Rejected:
    rejected = _holdable_guard(note)
    if rejected is not None:
        return rejected
    if note.current_pic_user_id is None:
        return Rejected("no_holder", f"Case note {note.request_number} has no current holder")
    if actor.id == note.current_pic_user_id:
        return Rejected("same_holder", f"User {actor.id} already holds case note {note.request_number}")
    return Transition(
        expected_status=note.status,
        values={},
        event=_custody_event(
            EventType.HANDOVER_REQUESTED,
            note,
            actor,
            now,
            reason=reason,
            current_holder_user_id=note.current_pic_user_id,
            priority=priority,
        ),
    )


def plan_respond_handover_request(
    request: HandoverRequestState,
    note: CaseNoteState,
    actor: ActorRef,
    *,
    approve: bool,
    now: datetime,
    notes: str | None = None,
) -> Transition | Rejected:
    if request.status != HandoverRequestStatus.PENDING:
        return Rejected("illegal_transition", f"Handover request {request.id} is already '{request.status}'")
    if actor.id != request.current_holder_user_id:
        return Rejected("not_holder", f"Only the holder can respond to handover request {request.id}")
    if note.current_pic_user_id != request.current_holder_user_id:
        return Rejected("stale_request", f"Holder of case note {note.request_number} changed since the request")
    if note.current_handover_request_id != request.id:
        return Rejected("stale_request", f"Handover request {request.id} is no longer current")
    if note.status not in HOLDABLE_STATUSES:
        return Rejected(
            "illegal_transition",
            f"Custody of case note {note.request_number} cannot change in status '{note.status}'",
        )
    if approve:
        return Transition(
            expected_status=note.status,
            values={
                "current_pic_user_id": request.requested_by_user_id,
                "current_handover_request_id": None,
                "handover_status": CustodyStatus.COMPLETED.value,
            },
            event=_custody_event(
                EventType.HANDOVER_APPROVED,
                note,
                actor,
                now,
                handover_request_id=request.id,
                new_pic_user_id=request.requested_by_user_id,
                notes=notes,
            ),
        )
    return Transition(
        expected_status=note.status,
        values={"current_handover_request_id": None},
        event=_custody_event(
            EventType.HANDOVER_REJECTED,
            note,
            actor,
            now,
            reason=notes,
            handover_request_id=request.id,
        ),
    )


def plan_verify_handover_request(
    request: HandoverRequestState,
    note: CaseNoteState,
    actor: ActorRef,
    *,
    now: datetime,
    notes: str | None = None,
) -> Transition | Rejected:
    if request.status != HandoverRequestStatus.APPROVED:
        return Rejected("illegal_transition", f"Handover request {request.id} is '{request.status}', not approved")
    if request.verified_at is not None:
        return Rejected("already_verified", f"Handover request {request.id} is already verified")
    if actor.id != request.requested_by_user_id:
        return Rejected("not_requester", f"Only the requester can verify handover request {request.id}")
    if note.status not in HOLDABLE_STATUSES:
        return Rejected(
            "illegal_transition",
            f"Case note {note.request_number} is '{note.status}' and cannot be verified",
        )
    return Transition(
        expected_status=note.status,
        values={},
        event=_custody_event(
            EventType.HANDOVER_VERIFIED,
            note,
            actor,
            now,
            handover_request_id=request.id,
            notes=notes,
        ),
    )


def plan_send_out(
    note: CaseNoteState,
    actor: ActorRef,
    *,
    to_user_id: int,
    now: datetime,
    notes: str | None = None,
) -> Transition | Rejected:
    rejected = _holdable_guard(note)
    if rejected is not None:
        return rejected
    if note.status != RequestStatus.APPROVED:
        return Rejected(
            "illegal_transition",
            f"Case note {note.request_number} is '{note.status}' and cannot be sent out",
        )
    if note.is_returned or note.is_rejected_return:
        return Rejected("return_outstanding", f"Case note {note.request_number} has a return outstanding")
    if actor.id != note.current_pic_user_id:
        return Rejected("not_holder", f"User {actor.id} does not hold case note {note.request_number}")
    if to_user_id == actor.id:
        return Rejected("same_holder", f"User {to_user_id} already holds case note {note.request_number}")
    return Transition(
        expected_status=note.status,
        values={},
        event=_custody_event(EventType.SENT_OUT, note, actor, now, sent_to_user_id=to_user_id, notes=notes),
    )


def _send_out_guard(send_out: SendOutState, note: CaseNoteState) -> Rejected | None:
    if send_out.status != SendOutStatus.PENDING:
        return Rejected("illegal_transition", f"Send-out {send_out.send_out_number} is already '{send_out.status}'")
    if note.id not in send_out.outstanding_ids or note.current_send_out_id != send_out.id:
        return Rejected(
            "stale_send_out",
            f"Case note {note.request_number} is not outstanding on send-out {send_out.send_out_number}",
        )
    if note.status not in HOLDABLE_STATUSES:
        return Rejected(
            "illegal_transition",
            f"Custody of case note {note.request_number} cannot change in status '{note.status}'",
        )
    return None


def plan_acknowledge_send_out(
    send_out: SendOutState,
    note: CaseNoteState,
    actor: ActorRef,
    *,
    now: datetime,
    notes: str | None = None,
) -> Transition | Rejected:
    if actor.id != send_out.sent_to_user_id:
        return Rejected("not_recipient", f"Only the recipient can acknowledge send-out {send_out.send_out_number}")
    rejected = _send_out_guard(send_out, note)
    if rejected is not None:
        return rejected
    return Transition(
        expected_status=note.status,
        values={"current_pic_user_id": send_out.sent_to_user_id, "current_send_out_id": None},
        event=_custody_event(
            EventType.SEND_OUT_ACKNOWLEDGED,
            note,
            actor,
            now,
            send_out_id=send_out.id,
            send_out_number=send_out.send_out_number,
            sent_by_user_id=send_out.sent_by_user_id,
            new_pic_user_id=send_out.sent_to_user_id,
            notes=notes,
        ),
    )


def plan_cancel_send_out(
    send_out: SendOutState,
    note: CaseNoteState,
    actor: ActorRef,
    *,
    now: datetime,
    reason: str | None = None,
) -> Transition | Rejected:
    if actor.id != send_out.sent_by_user_id:
        return Rejected("not_sender", f"Only the sender can cancel send-out {send_out.send_out_number}")
    rejected = _send_out_guard(send_out, note)
    if rejected is not None:
        return rejected
    return Transition(
        expected_status=note.status,
        values={"current_send_out_id": None},
        event=_custody_event(
            EventType.SEND_OUT_CANCELLED,
            note,
            actor,
            now,
            reason=reason,
            send_out_id=send_out.id,
            send_out_number=send_out.send_out_number,
        ),
    )
