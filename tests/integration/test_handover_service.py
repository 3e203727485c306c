from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import IntegrityError

from casenotes.application.dto.custody_dto import HandoverOfferRequest
from casenotes.domain.errors import ConcurrentModificationError
from casenotes.domain.models.transition import Ok, Rejected
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteHandover


def _offer(container, note_id: int, from_user: int, to_user: int, **kwargs):
    return container.handover_service.offer(note_id, HandoverOfferRequest(to_user_id=to_user, **kwargs), from_user)


def test_offer_acknowledge_complete_moves_custody(container, world, received_note) -> None:
    offered = _offer(container, received_note, world.ca_id, world.other_ca_id, location_id=world.location_id)
    assert isinstance(offered, Ok)
    handover = offered.value
    assert handover.status == "pending"
    assert offered.events[0].type == "handed_over"
    assert offered.events[0].to_person == "Clinic Assistant B"

    note = container.case_note_service.get(received_note)
    assert note.current_handover_id == handover.id
    assert note.handover_status == "pending"
    assert note.current_pic_user_id == world.ca_id
    assert [h.id for h in container.handover_service.list_incoming(world.other_ca_id)] == [handover.id]

    acknowledged = container.handover_service.acknowledge(handover.id, world.other_ca_id, notes="coming")
    assert isinstance(acknowledged, Ok)
    assert acknowledged.value.status == "Acknowledge"
    assert acknowledged.value.acknowledged_by_user_id == world.other_ca_id
    assert container.case_note_service.get(received_note).handover_status == "acknowledged"

    completed = container.handover_service.complete(handover.id, world.other_ca_id)
    assert isinstance(completed, Ok)
    assert completed.value.status == "completed"
    assert completed.value.completed_at is not None

    note = container.case_note_service.get(received_note)
    assert note.current_pic_user_id == world.other_ca_id
    assert note.current_handover_id is None
    assert note.handover_status == "completed"
    assert container.case_note_service.consistency_violations(received_note) == []
    assert container.handover_service.list_incoming(world.other_ca_id) == []

    timeline = container.timeline_service.timeline(received_note)
    assert [item.type for item in timeline][-3:] == ["handed_over", "handover_acknowledged", "handover_completed"]
    assert timeline[-3].description == "Handed Over by Clinic Assistant A to Specialist Clinic A (Clinic Assistant B)"


def test_only_one_handover_in_flight(container, world, received_note) -> None:
    first = _offer(container, received_note, world.ca_id, world.other_ca_id)
    assert first.ok

    second = _offer(container, received_note, world.ca_id, world.third_ca_id)
    assert isinstance(second, Rejected)
    assert second.code == "transfer_in_flight"

    handover_id = first.value.id
    container.handover_service.acknowledge(handover_id, world.other_ca_id)
    container.handover_service.complete(handover_id, world.other_ca_id)

    onward = _offer(container, received_note, world.other_ca_id, world.third_ca_id)
    assert isinstance(onward, Ok)
    assert len(container.handover_service.list_for_note(received_note)) == 2


def test_database_refuses_second_in_flight_row(container, world, received_note, session_factory) -> None:
    assert _offer(container, received_note, world.ca_id, world.other_ca_id).ok

    with pytest.raises(IntegrityError), session_factory() as session:
        session.add(
            CaseNoteHandover(
                case_note_request_id=received_note,
                handed_over_by_user_id=world.ca_id,
                handed_over_to_user_id=world.third_ca_id,
                status="Acknowledge",
            )
        )
        session.flush()


def test_handover_steps_are_recipient_only_and_ordered(container, world, received_note) -> None:
    handover_id = _offer(container, received_note, world.ca_id, world.other_ca_id).value.id

    early = container.handover_service.complete(handover_id, world.other_ca_id)
    assert isinstance(early, Rejected)
    assert early.code == "illegal_transition"

    stranger = container.handover_service.acknowledge(handover_id, world.third_ca_id)
    assert isinstance(stranger, Rejected)
    assert stranger.code == "not_recipient"

    assert container.handover_service.acknowledge(handover_id, world.other_ca_id).ok
    repeat = container.handover_service.acknowledge(handover_id, world.other_ca_id)
    assert isinstance(repeat, Rejected)
    assert container.handover_service.get(handover_id).status == "Acknowledge"


def test_cannot_hand_over_unreceived_or_to_self(container, world, make_request, received_note) -> None:
    pending_id = container.case_note_service.create(make_request(patient_index=1)).value.id
    not_ready = _offer(container, pending_id, world.ca_id, world.other_ca_id)
    assert isinstance(not_ready, Rejected)
    assert not_ready.code == "illegal_transition"

    to_self = _offer(container, received_note, world.ca_id, world.ca_id)
    assert isinstance(to_self, Rejected)
    assert to_self.code == "same_holder"


def test_return_blocked_while_handover_in_flight(container, world, received_note) -> None:
    assert _offer(container, received_note, world.ca_id, world.other_ca_id).ok

    blocked = container.return_service.mark_returned(received_note, world.ca_id)
    assert isinstance(blocked, Rejected)
    assert blocked.code == "transfer_in_flight"


def test_concurrent_offers_leave_one_in_flight(container, world, received_note) -> None:
    recipients = [world.other_ca_id, world.third_ca_id] * 4

    def attempt(to_user: int):
        try:
            return _offer(container, received_note, world.ca_id, to_user)
        except ConcurrentModificationError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(recipients)) as pool:
        results = list(pool.map(attempt, recipients))

    assert all(isinstance(r, (Ok, Rejected, ConcurrentModificationError)) for r in results)
    assert sum(isinstance(r, Ok) for r in results) == 1
    assert len(container.handover_service.list_for_note(received_note)) == 1
    note = container.case_note_service.get(received_note)
    assert note.current_handover_id == next(r for r in results if isinstance(r, Ok)).value.id
    assert container.case_note_service.consistency_violations(received_note) == []
