from __future__ import annotations

import pytest

from casenotes.application.dto.filing_dto import FilingCreateRequest, FilingDecisionRequest
from casenotes.domain.errors import EntityNotFoundError
from casenotes.domain.models.transition import Ok, Rejected


def test_patient_filing_counts_existing_case_notes(container, world, make_request) -> None:
    container.case_note_service.create(make_request(patient_index=0))
    container.case_note_service.create(make_request(patient_index=0, purpose="Second clinic"))
    container.case_note_service.create(make_request(patient_index=2))

    submitted = container.filing_service.submit(
        FilingCreateRequest(patient_ids=[world.patient_ids[0], world.patient_ids[1], world.patient_ids[0]]),
        world.ca_id,
    )

    assert isinstance(submitted, Ok)
    filing = submitted.value
    assert filing.filing_number == "FIL-20250314-001"
    assert filing.filing_type == "patient"
    assert filing.patient_ids == world.patient_ids[:2]
    assert filing.case_note_ids == []
    assert filing.expected_case_notes_count == 2
    assert filing.status == "pending"
    assert submitted.events == ()


def test_case_note_filing_writes_events_per_note(container, world, make_request) -> None:
    first = container.case_note_service.create(make_request(patient_index=0)).value.id
    second = container.case_note_service.create(make_request(patient_index=1)).value.id

    submitted = container.filing_service.submit(
        FilingCreateRequest(filing_type="case_note", case_note_ids=[first, second], submission_notes="Box 12"),
        world.ca_id,
    )

    assert isinstance(submitted, Ok)
    assert submitted.value.expected_case_notes_count == 2
    assert [e.request_id for e in submitted.events] == [first, second]
    assert {e.type for e in submitted.events} == {"filing_submitted"}
    assert submitted.events[0].metadata["filing_number"] == submitted.value.filing_number
    assert submitted.events[0].metadata["notes"] == "Box 12"

    # Filing events do not move the request status.
    assert container.case_note_service.get(first).status == "pending"
    history = container.timeline_service.replay(first)
    assert isinstance(history, Ok)
    assert history.value == ["pending"]


def test_filing_decision_is_final(container, world, make_request) -> None:
    note_id = container.case_note_service.create(make_request()).value.id
    filing_id = container.filing_service.submit(
        FilingCreateRequest(filing_type="case_note", case_note_ids=[note_id]), world.ca_id
    ).value.id

    approved = container.filing_service.approve(filing_id, world.mr_staff_id, notes="Shelved")
    assert isinstance(approved, Ok)
    assert approved.value.status == "approved"
    assert approved.value.approved_by_user_id == world.mr_staff_id
    assert approved.value.approval_notes == "Shelved"
    assert [e.type for e in approved.events] == ["filing_approved"]

    second = container.filing_service.reject(filing_id, "Too late", world.mr_staff_id)
    assert isinstance(second, Rejected)
    assert second.code == "already_decided"
    assert container.filing_service.get(filing_id).status == "approved"


def test_filing_rejection_records_reason(container, world, make_request) -> None:
    note_id = container.case_note_service.create(make_request()).value.id
    filing_id = container.filing_service.submit(
        FilingCreateRequest(filing_type="case_note", case_note_ids=[note_id]), world.ca_id
    ).value.id

    rejected = container.filing_service.decide(
        filing_id, FilingDecisionRequest(approve=False, notes="Missing discharge summary"), world.mr_staff_id
    )

    assert isinstance(rejected, Ok)
    assert rejected.value.status == "rejected"
    assert rejected.value.rejection_reason == "Missing discharge summary"
    assert rejected.value.rejected_by_user_id == world.mr_staff_id
    assert rejected.events[0].type == "filing_rejected"
    assert rejected.events[0].reason == "Missing discharge summary"


def test_filing_unknown_targets_raise(container, world) -> None:
    with pytest.raises(EntityNotFoundError):
        container.filing_service.submit(FilingCreateRequest(patient_ids=[9999]), world.ca_id)
    with pytest.raises(EntityNotFoundError):
        container.filing_service.submit(FilingCreateRequest(filing_type="case_note", case_note_ids=[9999]), world.ca_id)
    with pytest.raises(EntityNotFoundError):
        container.filing_service.get(9999)
    assert container.filing_service.list() == []


def test_list_filings_filters(container, world) -> None:
    first = container.filing_service.submit(
        FilingCreateRequest(patient_ids=[world.patient_ids[0]], expected_case_notes_count=4), world.ca_id
    ).value
    second = container.filing_service.submit(
        FilingCreateRequest(patient_ids=[world.patient_ids[1]]), world.other_ca_id
    ).value
    container.filing_service.approve(first.id, world.mr_staff_id)

    assert first.expected_case_notes_count == 4
    assert second.filing_number == "FIL-20250314-002"
    assert [f.id for f in container.filing_service.list()] == [second.id, first.id]
    assert [f.id for f in container.filing_service.list(status="pending")] == [second.id]
    assert [f.id for f in container.filing_service.list(submitted_by_user_id=world.ca_id)] == [first.id]
