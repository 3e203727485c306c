from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

PriorityLiteral = Literal["low", "normal", "high", "urgent"]
StatusLiteral = Literal[
    "pending",
    "approved",
    "in_progress",
    "completed",
    "rejected",
    "pending_return_verification",
]


class CaseNoteCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    patient_id: int
    requested_by_user_id: int
    department_id: int | None = None
    doctor_id: int | None = None
    location_id: int | None = None
    priority: PriorityLiteral = "normal"
    purpose: str = Field(..., min_length=1)
    needed_date: date | None = None
    remarks: str | None = None


class RejectionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(..., min_length=1, max_length=1000)


class CaseNoteFilters(BaseModel):
    status: StatusLiteral | None = None
    priority: PriorityLiteral | None = None
    department_id: int | None = None
    patient_id: int | None = None
    requested_by_user_id: int | None = None
    current_pic_user_id: int | None = None
    overdue: bool | None = None
    created_from: date | None = None
    created_to: date | None = None
    limit: int = Field(default=200, ge=1, le=1000)

    @field_validator("created_to")
    @classmethod
    def _validate_range(cls, v: date | None, info: ValidationInfo) -> date | None:
        start = info.data.get("created_from")
        if v and start and v < start:
            raise ValueError("created_to cannot be earlier than created_from")
        return v


class CaseNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_number: str
    patient_id: int
    requested_by_user_id: int | None = None
    department_id: int | None = None
    doctor_id: int | None = None
    location_id: int | None = None
    batch_id: int | None = None
    priority: str
    purpose: str
    needed_date: date | None = None
    remarks: str | None = None
    status: str
    version: int

    approved_at: datetime | None = None
    approved_by_user_id: int | None = None
    approval_remarks: str | None = None
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    rejected_by_user_id: int | None = None
    completed_at: datetime | None = None
    completed_by_user_id: int | None = None

    is_received: bool = False
    received_at: datetime | None = None
    received_by_user_id: int | None = None
    is_returned: bool = False
    returned_at: datetime | None = None
    returned_by_user_id: int | None = None
    is_rejected_return: bool = False
    return_rejection_reason: str | None = None
    return_verified_at: datetime | None = None

    current_pic_user_id: int | None = None
    current_handover_id: int | None = None
    current_handover_request_id: int | None = None
    current_send_out_id: int | None = None
    handover_status: str = "none"

    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    is_overdue: bool = False
    days_to_complete: int | None = None


class CaseNoteStats(BaseModel):
    total: int
    by_status: dict[str, int]
    overdue: int


class ReceiptVerificationSummary(BaseModel):
    verified_count: int
    already_verified_count: int
    on_behalf_of_user_id: int | None = None

    @property
    def total_processed(self) -> int:
        return self.verified_count + self.already_verified_count
