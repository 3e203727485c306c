from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from casenotes.application.dto.batch_dto import BatchCreateRequest, BatchProcessRequest
from casenotes.application.dto.case_note_dto import CaseNoteCreateRequest, CaseNoteFilters, RejectionRequest
from casenotes.application.dto.custody_dto import SendOutAcknowledgeRequest, SendOutCreateRequest
from casenotes.application.dto.filing_dto import FilingCreateRequest, FilingDecisionRequest
from casenotes.application.dto.timeline_dto import TrackingReportRequest
from casenotes.config import settings


def _item(patient_id: int) -> dict:
    return {"patient_id": patient_id, "purpose": "Clinic review"}


def test_rejection_reason_must_not_be_blank() -> None:
    with pytest.raises(ValidationError):
        RejectionRequest(reason="   ")
    assert RejectionRequest(reason="  illegible stamp ").reason == "illegible stamp"


def test_create_request_requires_purpose_and_known_priority() -> None:
    with pytest.raises(ValidationError):
        CaseNoteCreateRequest(patient_id=1, requested_by_user_id=1, purpose="")
    with pytest.raises(ValidationError):
        CaseNoteCreateRequest(patient_id=1, requested_by_user_id=1, purpose="Review", priority="asap")


def test_batch_size_is_limited() -> None:
    items = [_item(i) for i in range(1, settings.batch_max_size + 2)]
    with pytest.raises(ValidationError, match="at most"):
        BatchCreateRequest(requested_by_user_id=1, items=items)
    assert len(BatchCreateRequest(requested_by_user_id=1, items=items[:-1]).items) == settings.batch_max_size


def test_batch_rejects_empty_and_duplicate_patients() -> None:
    with pytest.raises(ValidationError):
        BatchCreateRequest(requested_by_user_id=1, items=[])
    with pytest.raises(ValidationError, match="only once"):
        BatchCreateRequest(requested_by_user_id=1, items=[_item(1), _item(1)])


def test_batch_rejection_needs_reason() -> None:
    with pytest.raises(ValidationError):
        BatchProcessRequest(status="rejected")
    assert BatchProcessRequest(status="rejected", rejection_reason="no clinic").rejection_reason == "no clinic"
    assert BatchProcessRequest(status="approved").rejection_reason is None


def test_filing_targets_must_match_type() -> None:
    with pytest.raises(ValidationError):
        FilingCreateRequest(filing_type="patient", case_note_ids=[1])
    with pytest.raises(ValidationError):
        FilingCreateRequest(filing_type="case_note", patient_ids=[1])
    assert FilingCreateRequest(filing_type="case_note", case_note_ids=[1, 2]).case_note_ids == [1, 2]


def test_filing_rejection_needs_notes() -> None:
    with pytest.raises(ValidationError):
        FilingDecisionRequest(approve=False)
    assert FilingDecisionRequest(approve=True).notes is None


def test_date_ranges_are_ordered() -> None:
    with pytest.raises(ValidationError):
        CaseNoteFilters(created_from=date(2025, 3, 14), created_to=date(2025, 3, 1))
    with pytest.raises(ValidationError):
        TrackingReportRequest(start_date=date(2025, 3, 14), end_date=date(2025, 3, 13))
    assert TrackingReportRequest(start_date=date(2025, 3, 14), end_date=date(2025, 3, 14)).direction == "out"


def test_send_out_note_list_is_bounded_and_unique() -> None:
    base = {"sent_to_user_id": 4, "department_id": 1, "doctor_id": 1}

    assert SendOutCreateRequest(**base, case_note_ids=list(range(1, 21))).case_note_ids[-1] == 20
    with pytest.raises(ValidationError):
        SendOutCreateRequest(**base, case_note_ids=list(range(1, 22)))
    with pytest.raises(ValidationError):
        SendOutCreateRequest(**base, case_note_ids=[])
    with pytest.raises(ValidationError):
        SendOutCreateRequest(**base, case_note_ids=[3, 3])
    with pytest.raises(ValidationError):
        SendOutCreateRequest(**base, case_note_ids=[3], notes="x" * 1001)
    with pytest.raises(ValidationError):
        SendOutAcknowledgeRequest(case_note_ids=[])
