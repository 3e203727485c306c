from __future__ import annotations

import pytest

from casenotes.application.dto.batch_dto import (
    BatchCreateRequest,
    BatchIndividualVerifyRequest,
    BatchItemRequest,
    BatchProcessRequest,
    BatchVerifyRequest,
)
from casenotes.application.dto.case_note_dto import RejectionRequest
from casenotes.domain.models.transition import Ok, Rejected


@pytest.fixture
def batch(container, world):
    items = [
        BatchItemRequest(patient_id=patient_id, purpose="Orthopaedic clinic", department_id=world.department_id)
        for patient_id in world.patient_ids
    ]
    return container.batch_service.create(
        BatchCreateRequest(requested_by_user_id=world.ca_id, notes="Friday list", items=items)
    ).value


def test_create_batch_creates_children(container, world, batch) -> None:
    assert batch.batch_number == "BATCH20250314-001"
    assert batch.status == "pending"
    assert [n.request_number for n in batch.case_notes] == [
        "REQ202503140001",
        "REQ202503140002",
        "REQ202503140003",
    ]
    assert all(n.batch_id == batch.id for n in batch.case_notes)
    assert all(n.requested_by_user_id == world.ca_id for n in batch.case_notes)

    created = container.timeline_service.timeline(batch.case_notes[0].id)[0]
    assert created.metadata["batch_number"] == batch.batch_number


def test_children_decisions_drive_aggregate_status(container, world, batch) -> None:
    first, second, third = (n.id for n in batch.case_notes)

    container.case_note_service.approve(first, world.mr_staff_id)
    container.case_note_service.approve(second, world.mr_staff_id)
    assert container.batch_service.get(batch.id).status == "pending"

    container.case_note_service.reject(third, RejectionRequest(reason="Not on list"), world.mr_staff_id)

    refreshed = container.batch_service.get(batch.id)
    assert refreshed.status == "partially_approved"
    assert refreshed.approved_count == 2
    assert container.batch_service.update_status(batch.id) == "partially_approved"

    not_verifiable = container.batch_service.verify_receipt(
        batch.id, BatchVerifyRequest(received_count=2), world.ca_id
    )
    assert isinstance(not_verifiable, Rejected)
    assert not_verifiable.code == "not_verifiable"


def test_process_approves_all_pending_children(container, world, batch) -> None:
    request = BatchProcessRequest(status="approved", notes="ok")
    processed = container.batch_service.process(batch.id, request, world.mr_staff_id)

    assert isinstance(processed, Ok)
    assert processed.value.status == "approved"
    assert processed.value.processed_by_user_id == world.mr_staff_id
    assert processed.value.approved_count == 3
    assert {n.status for n in processed.value.case_notes} == {"approved"}
    assert [e.type for e in processed.events] == ["approved"] * 3
    assert all(e.metadata["batch_id"] == batch.id for e in processed.events)

    again = container.batch_service.process(batch.id, BatchProcessRequest(status="approved"), world.mr_staff_id)
    assert isinstance(again, Rejected)
    assert again.code == "not_pending"


def test_process_rejects_with_reason(container, world, batch) -> None:
    request = BatchProcessRequest(status="rejected", rejection_reason="Clinic cancelled")
    processed = container.batch_service.process(batch.id, request, world.mr_staff_id)

    assert isinstance(processed, Ok)
    assert processed.value.status == "rejected"
    assert processed.value.approved_count == 0
    assert {n.rejection_reason for n in processed.value.case_notes} == {"Clinic cancelled"}


def test_process_leaves_already_decided_children(container, world, batch) -> None:
    third = batch.case_notes[2].id
    container.case_note_service.reject(third, RejectionRequest(reason="Duplicate"), world.mr_staff_id)

    processed = container.batch_service.process(batch.id, BatchProcessRequest(status="approved"), world.mr_staff_id)

    assert isinstance(processed, Ok)
    assert len(processed.events) == 2
    assert processed.value.approved_count == 2
    statuses = [n.status for n in processed.value.case_notes]
    assert statuses == ["approved", "approved", "rejected"]


def test_verify_receipt_checks_requester_and_count(container, world, batch) -> None:
    container.batch_service.process(batch.id, BatchProcessRequest(status="approved"), world.mr_staff_id)
    service = container.batch_service

    stranger = service.verify_receipt(batch.id, BatchVerifyRequest(received_count=3), world.other_ca_id)
    assert isinstance(stranger, Rejected)
    assert stranger.code == "not_requester"

    too_many = service.verify_receipt(batch.id, BatchVerifyRequest(received_count=4), world.ca_id)
    assert isinstance(too_many, Rejected)
    assert too_many.code == "invalid_count"

    verified = service.verify_receipt(
        batch.id, BatchVerifyRequest(received_count=2, verification_notes="one missing"), world.ca_id
    )
    assert isinstance(verified, Ok)
    assert verified.value.is_verified is True
    assert verified.value.received_count == 2
    assert verified.value.verified_by_user_id == world.ca_id
    assert [e.type for e in verified.events] == ["verified_received"] * 3
    assert verified.events[0].metadata["counts_match"] is False

    twice = service.verify_receipt(batch.id, BatchVerifyRequest(received_count=3), world.ca_id)
    assert isinstance(twice, Rejected)
    assert twice.code == "not_verifiable"


def test_verify_individual_marks_children_received(container, world, batch) -> None:
    first, second, third = (n.id for n in batch.case_notes)
    service = container.batch_service

    not_yet = service.verify_individual(batch.id, BatchIndividualVerifyRequest(case_note_ids=[first]), world.ca_id)
    assert isinstance(not_yet, Rejected)
    assert not_yet.code == "not_approved"

    service.process(batch.id, BatchProcessRequest(status="approved"), world.mr_staff_id)

    partial = service.verify_individual(
        batch.id, BatchIndividualVerifyRequest(case_note_ids=[first, second]), world.ca_id
    )
    assert isinstance(partial, Ok)
    assert partial.value.received_count == 2
    assert partial.value.is_verified is False
    assert [e.type for e in partial.events] == ["received", "received"]

    unknown = service.verify_individual(batch.id, BatchIndividualVerifyRequest(case_note_ids=[9999]), world.ca_id)
    assert isinstance(unknown, Rejected)
    assert unknown.code == "invalid_case_notes"

    done = service.verify_individual(
        batch.id, BatchIndividualVerifyRequest(case_note_ids=[second, third]), world.ca_id
    )
    assert isinstance(done, Ok)
    assert done.value.is_verified is True
    assert done.value.received_count == 3
    assert len(done.events) == 1
    assert container.case_note_service.get(third).is_received is True


def test_mark_as_processed_and_listing(container, world, batch) -> None:
    with pytest.raises(ValueError):
        container.batch_service.mark_as_processed(batch.id, "archived", world.admin_id)

    overridden = container.batch_service.mark_as_processed(batch.id, "rejected", world.admin_id, notes="cancelled")
    assert overridden.status == "rejected"
    assert overridden.processing_notes == "cancelled"
    assert {n.status for n in overridden.case_notes} == {"pending"}

    assert [b.id for b in container.batch_service.list(requested_by_user_id=world.ca_id)] == [batch.id]
    assert container.batch_service.list(status="pending") == []
    assert container.batch_service.list(requested_by_user_id=world.other_ca_id) == []
