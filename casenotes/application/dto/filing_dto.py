from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FilingCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    filing_type: Literal["patient", "case_note"] = "patient"
    patient_ids: list[int] = Field(default_factory=list)
    case_note_ids: list[int] = Field(default_factory=list)
    expected_case_notes_count: int | None = Field(default=None, ge=0)
    submission_notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_targets(self) -> FilingCreateRequest:
        if self.filing_type == "patient" and not self.patient_ids:
            raise ValueError("Patient filing requires at least one patient id")
        if self.filing_type == "case_note" and not self.case_note_ids:
            raise ValueError("Case note filing requires at least one case note id")
        return self


class FilingDecisionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    approve: bool
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_reason(self) -> FilingDecisionRequest:
        if not self.approve and not self.notes:
            raise ValueError("A rejection reason is required")
        return self


class FilingResponse(BaseModel):
    id: int
    filing_number: str
    submitted_by_user_id: int
    filing_type: str
    patient_ids: list[int] = Field(default_factory=list)
    case_note_ids: list[int] = Field(default_factory=list)
    expected_case_notes_count: int
    submission_notes: str | None = None
    status: str
    approved_at: datetime | None = None
    approved_by_user_id: int | None = None
    approval_notes: str | None = None
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    rejected_by_user_id: int | None = None
    created_at: datetime
