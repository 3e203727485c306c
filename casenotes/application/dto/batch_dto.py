from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from casenotes.application.dto.case_note_dto import CaseNoteResponse, PriorityLiteral
from casenotes.config import settings


class BatchItemRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    patient_id: int
    department_id: int | None = None
    doctor_id: int | None = None
    location_id: int | None = None
    priority: PriorityLiteral = "normal"
    purpose: str = Field(..., min_length=1)
    needed_date: date | None = None
    remarks: str | None = None


class BatchCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    requested_by_user_id: int
    notes: str | None = Field(default=None, max_length=1000)
    items: list[BatchItemRequest] = Field(..., min_length=1)

    @field_validator("items")
    @classmethod
    def _validate_size(cls, v: list[BatchItemRequest]) -> list[BatchItemRequest]:
        if len(v) > settings.batch_max_size:
            raise ValueError(f"A batch may contain at most {settings.batch_max_size} case notes")
        patient_ids = [item.patient_id for item in v]
        if len(set(patient_ids)) != len(patient_ids):
            raise ValueError("A patient may appear only once per batch")
        return v


class BatchProcessRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: Literal["approved", "rejected"]
    notes: str | None = Field(default=None, max_length=1000)
    rejection_reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_reason(self) -> BatchProcessRequest:
        if self.status == "rejected" and not self.rejection_reason:
            raise ValueError("A rejection reason is required when rejecting a batch")
        return self


class BatchVerifyRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    received_count: int = Field(..., ge=0)
    verification_notes: str | None = Field(default=None, max_length=1000)


class BatchIndividualVerifyRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    case_note_ids: list[int] = Field(..., min_length=1)
    verification_notes: str | None = Field(default=None, max_length=1000)


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_number: str
    requested_by_user_id: int | None = None
    status: str
    notes: str | None = None
    approved_count: int | None = None
    received_count: int | None = None
    processed_at: datetime | None = None
    processed_by_user_id: int | None = None
    processing_notes: str | None = None
    is_verified: bool = False
    verified_at: datetime | None = None
    verified_by_user_id: int | None = None
    verification_notes: str | None = None
    created_at: datetime
    case_notes: list[CaseNoteResponse] = Field(default_factory=list)
