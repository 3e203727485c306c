from __future__ import annotations

from enum import StrEnum


class RequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    PENDING_RETURN_VERIFICATION = "pending_return_verification"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class Priority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class CustodyStatus(StrEnum):
    """Handover state mirrored on the case note record."""

    NONE = "none"
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"


class HandoverStatus(StrEnum):
    PENDING = "pending"
    ACKNOWLEDGE = "Acknowledge"
    COMPLETED = "completed"

    @classmethod
    def in_flight(cls) -> tuple[str, ...]:
        return (cls.PENDING.value, cls.ACKNOWLEDGE.value)


class SendOutStatus(StrEnum):
    PENDING = "pending"
    ACKNOWLEDGE = "Acknowledge"
    CANCELLED = "cancelled"


class HandoverRequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BatchStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIALLY_APPROVED = "partially_approved"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class FilingStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(StrEnum):
    ADMIN = "ADMIN"
    MR_STAFF = "MR_STAFF"
    CA = "CA"


class SequenceScope(StrEnum):
    REQUEST = "request"
    BATCH = "batch"
    FILING = "filing"
    SEND_OUT = "send_out"


class EventType(StrEnum):
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RECEIVED = "received"
    VERIFIED_RECEIVED = "verified_received"
    HANDED_OVER = "handed_over"
    HANDOVER_ACKNOWLEDGED = "handover_acknowledged"
    HANDOVER_COMPLETED = "handover_completed"
    HANDOVER_REQUESTED = "handover_requested"
    HANDOVER_APPROVED = "handover_approved"
    HANDOVER_REJECTED = "handover_rejected"
    HANDOVER_VERIFIED = "handover_verified"
    SENT_OUT = "sent_out"
    SEND_OUT_ACKNOWLEDGED = "acknowledged_received"
    SEND_OUT_CANCELLED = "send_out_cancelled"
    RETURNED = "returned"
    RETURNED_VERIFIED = "returned_verified"
    RETURNED_REJECTED = "returned_rejected"
    FILING_SUBMITTED = "filing_submitted"
    FILING_APPROVED = "filing_approved"
    FILING_REJECTED = "filing_rejected"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


EVENT_TYPE_LABELS: dict[str, str] = {
    EventType.CREATED: "Created",
    EventType.APPROVED: "Approved",
    EventType.REJECTED: "Rejected",
    EventType.IN_PROGRESS: "In Progress",
    EventType.COMPLETED: "Completed",
    EventType.RECEIVED: "Received",
    EventType.VERIFIED_RECEIVED: "Receipt Verified",
    EventType.HANDED_OVER: "Handed Over",
    EventType.HANDOVER_ACKNOWLEDGED: "Handover Acknowledged",
    EventType.HANDOVER_COMPLETED: "Handover Completed",
    EventType.HANDOVER_REQUESTED: "Handover Requested",
    EventType.HANDOVER_APPROVED: "Handover Approved",
    EventType.HANDOVER_REJECTED: "Handover Rejected",
    EventType.HANDOVER_VERIFIED: "Handover Verified",
    EventType.SENT_OUT: "Sent Out",
    EventType.SEND_OUT_ACKNOWLEDGED: "Send-out Received",
    EventType.SEND_OUT_CANCELLED: "Send-out Cancelled",
    EventType.RETURNED: "Returned",
    EventType.RETURNED_VERIFIED: "Return Verified",
    EventType.RETURNED_REJECTED: "Return Rejected",
    EventType.FILING_SUBMITTED: "Filing Submitted",
    EventType.FILING_APPROVED: "Filing Approved",
    EventType.FILING_REJECTED: "Filing Rejected",
}

REQUEST_NUMBER_PREFIX = "REQ"
BATCH_NUMBER_PREFIX = "BATCH"
FILING_NUMBER_PREFIX = "FIL"
SEND_OUT_NUMBER_PREFIX = "SO"
MAX_SEND_OUT_NOTES = 20

CLOSED_STATUSES = frozenset({RequestStatus.COMPLETED.value, RequestStatus.REJECTED.value})
HOLDABLE_STATUSES = frozenset({RequestStatus.APPROVED.value, RequestStatus.IN_PROGRESS.value})
