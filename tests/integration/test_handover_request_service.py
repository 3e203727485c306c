from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from casenotes.application.dto.custody_dto import HandoverDecisionRequest, HandoverOfferRequest, HandoverRequestCreate
from casenotes.domain.errors import ConcurrentModificationError
from casenotes.domain.models.transition import Ok, Rejected


def test_approved_request_moves_custody_and_is_verified(container, world, received_note) -> None:
    requests = container.handover_request_service

    created = requests.create(
        received_note, HandoverRequestCreate(reason="Clinic at 2pm", priority="high"), world.other_ca_id
    )
    assert isinstance(created, Ok)
    pull = created.value
    assert pull.status == "pending"
    assert pull.current_holder_user_id == world.ca_id
    assert pull.priority == "high"
    assert container.case_note_service.get(received_note).current_handover_request_id == pull.id
    assert [r.id for r in requests.list_incoming(world.ca_id)] == [pull.id]

    decided = requests.respond(pull.id, HandoverDecisionRequest(approve=True, notes="take it"), world.ca_id)
    assert isinstance(decided, Ok)
    assert decided.value.status == "approved"
    assert decided.value.responded_by_user_id == world.ca_id
    assert decided.events[0].type == "handover_approved"

    note = container.case_note_service.get(received_note)
    assert note.current_pic_user_id == world.other_ca_id
    assert note.current_handover_request_id is None
    assert requests.list_incoming(world.ca_id) == []

    verified = requests.verify(pull.id, world.other_ca_id, notes="got it")
    assert isinstance(verified, Ok)
    assert verified.value.verified_at is not None
    assert verified.value.verification_notes == "got it"

    again = requests.verify(pull.id, world.other_ca_id)
    assert isinstance(again, Rejected)
    assert again.code == "already_verified"
    assert [r.id for r in requests.list_mine(world.other_ca_id)] == [pull.id]


def test_rejected_request_keeps_holder(container, world, received_note) -> None:
    requests = container.handover_request_service
    pull_id = requests.create(received_note, HandoverRequestCreate(), world.other_ca_id).value.id

    decided = requests.respond(pull_id, HandoverDecisionRequest(approve=False, notes="still in clinic"), world.ca_id)
    assert isinstance(decided, Ok)
    assert decided.value.status == "rejected"
    assert decided.value.response_notes == "still in clinic"

    note = container.case_note_service.get(received_note)
    assert note.current_pic_user_id == world.ca_id
    assert note.current_handover_request_id is None

    not_approved = requests.verify(pull_id, world.other_ca_id)
    assert isinstance(not_approved, Rejected)
    assert not_approved.code == "illegal_transition"

    retry = requests.create(received_note, HandoverRequestCreate(), world.other_ca_id)
    assert isinstance(retry, Ok)


def test_only_holder_may_respond(container, world, received_note) -> None:
    requests = container.handover_request_service
    pull_id = requests.create(received_note, HandoverRequestCreate(), world.other_ca_id).value.id

    refused = requests.respond(pull_id, HandoverDecisionRequest(approve=True), world.third_ca_id)
    assert isinstance(refused, Rejected)
    assert refused.code == "not_holder"

    own = requests.create(received_note, HandoverRequestCreate(), world.ca_id)
    assert isinstance(own, Rejected)


def test_holder_push_and_requester_pull_are_mutually_exclusive(container, world, received_note) -> None:
    pull = container.handover_request_service.create(received_note, HandoverRequestCreate(), world.other_ca_id)
    assert pull.ok

    offer = HandoverOfferRequest(to_user_id=world.third_ca_id)
    push = container.handover_service.offer(received_note, offer, world.ca_id)
    assert isinstance(push, Rejected)
    assert push.code == "transfer_in_flight"

    second_pull = container.handover_request_service.create(received_note, HandoverRequestCreate(), world.third_ca_id)
    assert isinstance(second_pull, Rejected)
    assert second_pull.code == "transfer_in_flight"

    decision = HandoverDecisionRequest(approve=False, notes="no")
    container.handover_request_service.respond(pull.value.id, decision, world.ca_id)

    offered = container.handover_service.offer(received_note, offer, world.ca_id)
    assert isinstance(offered, Ok)
    blocked_pull = container.handover_request_service.create(received_note, HandoverRequestCreate(), world.other_ca_id)
    assert isinstance(blocked_pull, Rejected)
    assert blocked_pull.code == "transfer_in_flight"


def test_concurrent_requests_leave_one_pending(container, world, received_note) -> None:
    requesters = [world.other_ca_id, world.third_ca_id] * 4

    def attempt(user_id: int):
        try:
            return container.handover_request_service.create(received_note, HandoverRequestCreate(), user_id)
        except ConcurrentModificationError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(requesters)) as pool:
        results = list(pool.map(attempt, requesters))

    assert all(isinstance(r, (Ok, Rejected, ConcurrentModificationError)) for r in results)
    winners = [r for r in results if isinstance(r, Ok)]
    assert len(winners) == 1
    assert [r.id for r in container.handover_request_service.list_incoming(world.ca_id)] == [winners[0].value.id]
    assert container.case_note_service.get(received_note).current_handover_request_id == winners[0].value.id
