from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from casenotes.application.dto.case_note_dto import PriorityLiteral
from casenotes.domain.constants import MAX_SEND_OUT_NOTES


class HandoverOfferRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    to_user_id: int
    department_id: int | None = None
    location_id: int | None = None
    doctor_id: int | None = None
    reason: str | None = Field(default=None, max_length=1000)
    handover_notes: str | None = Field(default=None, max_length=1000)


class HandoverResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    case_note_request_id: int
    handed_over_by_user_id: int
    handed_over_to_user_id: int
    department_id: int | None = None
    location_id: int | None = None
    doctor_id: int | None = None
    reason: str | None = None
    handover_notes: str | None = None
    status: str
    handed_over_at: datetime
    acknowledged_at: datetime | None = None
    acknowledged_by_user_id: int | None = None
    acknowledgement_notes: str | None = None
    completed_at: datetime | None = None


class HandoverRequestCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    department_id: int | None = None
    location_id: int | None = None
    doctor_id: int | None = None
    reason: str | None = Field(default=None, max_length=1000)
    priority: PriorityLiteral = "normal"


class HandoverDecisionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    approve: bool
    notes: str | None = Field(default=None, max_length=1000)


class HandoverRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    case_note_request_id: int
    requested_by_user_id: int
    current_holder_user_id: int
    department_id: int | None = None
    location_id: int | None = None
    doctor_id: int | None = None
    reason: str | None = None
    priority: str
    status: str
    responded_at: datetime | None = None
    responded_by_user_id: int | None = None
    response_notes: str | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None
    created_at: datetime


class SendOutCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    sent_to_user_id: int
    department_id: int
    doctor_id: int
    case_note_ids: list[int] = Field(..., min_length=1, max_length=MAX_SEND_OUT_NOTES)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("case_note_ids")
    @classmethod
    def _unique_ids(cls, v: list[int]) -> list[int]:
        if len(set(v)) != len(v):
            raise ValueError("case_note_ids must not repeat")
        return v


class SendOutAcknowledgeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    case_note_ids: list[int] = Field(..., min_length=1)
    notes: str | None = Field(default=None, max_length=1000)


class SendOutResponse(BaseModel):
    id: int
    send_out_number: str
    sent_by_user_id: int
    sent_to_user_id: int
    department_id: int
    doctor_id: int
    case_note_ids: list[int]
    case_note_count: int
    acknowledged_case_note_ids: list[int] = Field(default_factory=list)
    status: str
    notes: str | None = None
    sent_at: datetime
    acknowledged_at: datetime | None = None
    acknowledged_by_user_id: int | None = None
    acknowledgment_notes: str | None = None
    cancelled_at: datetime | None = None

    @property
    def outstanding_ids(self) -> list[int]:
        return [i for i in self.case_note_ids if i not in self.acknowledged_case_note_ids]
