from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class TimelineItem(BaseModel):
    id: int
    type: str
    type_label: str
    description: str
    actor_user_id: int | None = None
    actor_name: str | None = None
    to_person: str | None = None
    reason: str | None = None
    occurred_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class TrackingReportRequest(BaseModel):
    start_date: date
    end_date: date
    direction: Literal["in", "out"] = "out"

    @field_validator("end_date")
    @classmethod
    def _validate_range(cls, v: date, info: ValidationInfo) -> date:
        start = info.data.get("start_date")
        if start and v < start:
            raise ValueError("end_date cannot be earlier than start_date")
        return v


class TrackingReportRow(BaseModel):
    request_id: int
    request_number: str
    patient_name: str
    patient_mrn: str
    department_name: str | None = None
    status: str
    actor_name: str | None = None
    activity_at: datetime
    direction: str


class UnverifiedReminder(BaseModel):
    user_id: int
    user_name: str
    email: str
    request_numbers: list[str]
    oldest_approved_at: datetime


class RequestEventResponse(BaseModel):
    id: int
    request_id: int
    type: str
    actor_user_id: int | None = None
    to_location_id: int | None = None
    to_person: str | None = None
    reason: str | None = None
    occurred_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
