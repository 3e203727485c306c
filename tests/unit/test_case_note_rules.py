from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

import pytest

from casenotes.domain.constants import CustodyStatus, EventType, RequestStatus
from casenotes.domain.models.case_note import ActorRef, CaseNoteState
from casenotes.domain.models.transition import Rejected, Transition
from casenotes.domain.rules import case_note_rules as rules

NOW = datetime(2025, 3, 14, 10, 0)
MR = ActorRef(id=2, name="Records Officer")
CA = ActorRef(id=3, name="Clinic Assistant A")


def _note(**overrides) -> CaseNoteState:
    base = CaseNoteState(
        id=1,
        request_number="REQ202503140001",
        status=RequestStatus.PENDING.value,
        version=1,
        requested_by_user_id=CA.id,
        current_pic_user_id=CA.id,
    )
    return replace(base, **overrides)


def _received(**overrides) -> CaseNoteState:
    return _note(status=RequestStatus.APPROVED.value, is_received=True, **overrides)


def test_approve_pending_sets_audit_fields_and_event() -> None:
    planned = rules.plan_approve(_note(), MR, now=NOW, remarks="ok")

    assert isinstance(planned, Transition)
    assert planned.expected_status == "pending"
    assert planned.new_status == "approved"
    assert planned.values["approved_by_user_id"] == MR.id
    assert planned.values["approved_at"] == NOW
    assert planned.event.type == EventType.APPROVED
    assert planned.event.metadata["old_status"] == "pending"
    assert planned.event.metadata["new_status"] == "approved"
    assert planned.event.metadata["actor_name"] == "Records Officer"


@pytest.mark.parametrize(
    "status",
    ["approved", "in_progress", "completed", "rejected", "pending_return_verification"],
)
def test_approve_and_reject_only_from_pending(status: str) -> None:
    note = _note(status=status)

    approved = rules.plan_approve(note, MR, now=NOW)
    rejected = rules.plan_reject(note, MR, now=NOW, reason="missing")

    assert isinstance(approved, Rejected) and approved.code == "illegal_transition"
    assert isinstance(rejected, Rejected) and rejected.code == "illegal_transition"
    assert approved.ok is False


def test_reject_carries_reason_on_event() -> None:
    planned = rules.plan_reject(_note(), MR, now=NOW, reason="Duplicate request")

    assert isinstance(planned, Transition)
    assert planned.values["rejection_reason"] == "Duplicate request"
    assert planned.event.reason == "Duplicate request"


def test_complete_from_pending_is_refused() -> None:
    result = rules.plan_complete(_note(), MR, now=NOW)
    assert isinstance(result, Rejected)
    assert result.code == "illegal_transition"


@pytest.mark.parametrize("status", ["approved", "in_progress"])
def test_complete_from_holdable_statuses(status: str) -> None:
    planned = rules.plan_complete(_note(status=status), MR, now=NOW)
    assert isinstance(planned, Transition)
    assert planned.new_status == "completed"
    assert planned.values["completed_at"] == NOW


def test_complete_refused_while_transfer_in_flight() -> None:
    note = _received(current_handover_id=9, handover_status=CustodyStatus.PENDING.value)
    result = rules.plan_complete(note, MR, now=NOW)
    assert isinstance(result, Rejected)
    assert result.code == "transfer_in_flight"


def test_start_progress_only_from_approved() -> None:
    assert isinstance(rules.plan_start_progress(_note(status="approved"), MR, now=NOW), Transition)
    assert isinstance(rules.plan_start_progress(_note(status="in_progress"), MR, now=NOW), Rejected)


def test_mark_received_keeps_status_and_flags_receipt() -> None:
    planned = rules.plan_mark_received(_note(status="approved"), CA, now=NOW, notes="picked up")

    assert isinstance(planned, Transition)
    assert planned.new_status == "approved"
    assert planned.values["is_received"] is True
    assert planned.values["received_by_user_id"] == CA.id
    assert planned.event.metadata["notes"] == "picked up"


def test_mark_received_twice_is_refused() -> None:
    result = rules.plan_mark_received(_received(), CA, now=NOW)
    assert isinstance(result, Rejected)
    assert result.code == "already_received"


def test_mark_received_requires_approval() -> None:
    result = rules.plan_mark_received(_note(), CA, now=NOW)
    assert isinstance(result, Rejected)
    assert result.code == "illegal_transition"


def test_return_moves_to_pending_verification() -> None:
    planned = rules.plan_return(_received(), CA, now=NOW, notes="done with it")

    assert isinstance(planned, Transition)
    assert planned.new_status == "pending_return_verification"
    assert planned.values["is_returned"] is True
    assert planned.values["returned_by_user_id"] == CA.id
    assert "is_re_return" not in planned.event.metadata


@pytest.mark.parametrize(
    ("note", "code"),
    [
        (_note(status="approved"), "not_received"),
        (_received(is_returned=True), "already_returned"),
        (_received(current_pic_user_id=99), "not_holder"),
        (_received(current_handover_request_id=4), "transfer_in_flight"),
        (_note(status="completed", is_received=True), "illegal_transition"),
    ],
)
def test_return_guards(note: CaseNoteState, code: str) -> None:
    result = rules.plan_return(note, CA, now=NOW)
    assert isinstance(result, Rejected)
    assert result.code == code


def test_reject_return_reverts_to_approved_and_allows_re_return() -> None:
    returned = _note(status="pending_return_verification", is_received=True, is_returned=True)
    planned = rules.plan_reject_return(returned, MR, now=NOW, reason="illegible stamp")

    assert isinstance(planned, Transition)
    assert planned.new_status == "approved"
    assert planned.values["is_rejected_return"] is True
    assert planned.values["is_returned"] is False
    assert planned.event.reason == "illegible stamp"

    bounced = _received(is_rejected_return=True)
    assert rules.can_be_returned_by(bounced, CA.id) is True
    again = rules.plan_return(bounced, CA, now=NOW)
    assert isinstance(again, Transition)
    assert again.event.metadata["is_re_return"] is True


def test_verify_return_completes_and_clears_rejected_flag() -> None:
    note = _note(
        status="pending_return_verification",
        is_received=True,
        is_returned=True,
        is_rejected_return=True,
    )
    planned = rules.plan_verify_return(note, MR, now=NOW)

    assert isinstance(planned, Transition)
    assert planned.new_status == "completed"
    assert planned.values["is_rejected_return"] is False
    assert planned.values["current_pic_user_id"] is None
    assert planned.event.metadata["returned_by_user_id"] == CA.id


def test_verify_return_requires_pending_verification() -> None:
    assert isinstance(rules.plan_verify_return(_received(), MR, now=NOW), Rejected)
    assert isinstance(rules.plan_reject_return(_received(), MR, now=NOW, reason="x"), Rejected)


def test_status_graph() -> None:
    assert rules.is_legal_status_change("pending", "approved")
    assert rules.is_legal_status_change("pending_return_verification", "approved")
    assert not rules.is_legal_status_change("pending", "completed")
    assert not rules.is_legal_status_change("rejected", "approved")
    assert not rules.is_legal_status_change("completed", "approved")


def test_is_overdue() -> None:
    today = date(2025, 3, 14)
    assert rules.is_overdue(date(2025, 3, 13), "approved", today) is True
    assert rules.is_overdue(date(2025, 3, 14), "approved", today) is False
    assert rules.is_overdue(date(2025, 3, 1), "completed", today) is False
    assert rules.is_overdue(date(2025, 3, 1), "rejected", today) is False
    assert rules.is_overdue(None, "pending", today) is False


def test_days_to_complete() -> None:
    created = datetime(2025, 3, 1, 9, 0)
    assert rules.days_to_complete(created, datetime(2025, 3, 4, 8, 59)) == 2
    assert rules.days_to_complete(created, datetime(2025, 3, 4, 9, 0)) == 3
    assert rules.days_to_complete(created, None) is None


def test_consistency_violations() -> None:
    assert rules.consistency_violations(_received()) == []
    assert rules.consistency_violations(_note(status="rejected", is_returned=True))
    assert rules.consistency_violations(_note(status="pending_return_verification"))
    assert rules.consistency_violations(_note(handover_status=CustodyStatus.PENDING.value))
    assert rules.consistency_violations(
        _received(
            current_handover_id=1,
            current_handover_request_id=2,
            handover_status=CustodyStatus.PENDING.value,
        )
    )
    assert rules.consistency_violations(_received(current_send_out_id=3)) == []
    assert rules.consistency_violations(_received(current_handover_request_id=2, current_send_out_id=3)) == [
        "two custody transfers in flight"
    ]
