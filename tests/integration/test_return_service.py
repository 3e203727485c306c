from __future__ import annotations

from casenotes.application.dto.case_note_dto import RejectionRequest
from casenotes.domain.models.transition import Ok, Rejected


def test_rejected_return_can_be_returned_again_and_verified(container, world, received_note) -> None:
    returns = container.return_service

    returned = returns.mark_returned(received_note, world.ca_id, notes="clinic done")
    assert isinstance(returned, Ok)
    assert returned.value.status == "pending_return_verification"
    assert returned.value.is_returned is True
    assert [n.id for n in returns.list_pending_verification()] == [received_note]

    bounced = returns.reject_return(received_note, RejectionRequest(reason="illegible stamp"), world.mr_staff_id)
    assert isinstance(bounced, Ok)
    assert bounced.value.status == "approved"
    assert bounced.value.is_rejected_return is True
    assert bounced.value.return_rejection_reason == "illegible stamp"
    assert [n.id for n in returns.list_returnable(world.ca_id)] == [received_note]

    again = returns.mark_returned(received_note, world.ca_id)
    assert isinstance(again, Ok)
    assert again.value.status == "pending_return_verification"
    assert again.events[0].metadata["is_re_return"] is True

    verified = returns.verify_return(received_note, world.mr_staff_id)
    assert isinstance(verified, Ok)
    note = verified.value
    assert note.status == "completed"
    assert note.is_rejected_return is False
    assert note.current_pic_user_id is None
    assert note.return_verified_at is not None

    history = container.timeline_service.replay(received_note)
    assert isinstance(history, Ok)
    assert history.value == [
        "pending",
        "approved",
        "pending_return_verification",
        "approved",
        "pending_return_verification",
        "completed",
    ]


def test_return_guards(container, world, make_request, received_note) -> None:
    returns = container.return_service

    not_holder = returns.mark_returned(received_note, world.other_ca_id)
    assert isinstance(not_holder, Rejected)
    assert not_holder.code == "not_holder"

    unreceived = container.case_note_service.create(make_request(patient_index=1)).value.id
    container.case_note_service.approve(unreceived, world.mr_staff_id)
    never_received = returns.mark_returned(unreceived, world.ca_id)
    assert isinstance(never_received, Rejected)
    assert never_received.code == "not_received"

    assert returns.mark_returned(received_note, world.ca_id).ok
    twice = returns.mark_returned(received_note, world.ca_id)
    assert isinstance(twice, Rejected)
    assert twice.code == "illegal_transition"

    assert isinstance(returns.verify_return(unreceived, world.mr_staff_id), Rejected)
    assert returns.list_returnable(world.ca_id) == []
