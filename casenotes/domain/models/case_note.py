from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from casenotes.domain.constants import CustodyStatus


@dataclass(frozen=True, slots=True)
class ActorRef:
    id: int
    name: str


@dataclass(frozen=True, slots=True)
class CaseNoteState:
    id: int
    request_number: str
    status: str
    version: int
    requested_by_user_id: int | None
    current_pic_user_id: int | None = None
    current_handover_id: int | None = None
    current_handover_request_id: int | None = None
    current_send_out_id: int | None = None
    handover_status: str = CustodyStatus.NONE.value
    is_received: bool = False
    is_returned: bool = False
    is_rejected_return: bool = False
    batch_id: int | None = None
    needed_date: date | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def has_transfer_in_flight(self) -> bool:
        return len(self.transfers_in_flight) > 0

    @property
    def transfers_in_flight(self) -> list[int]:
        pointers = (self.current_handover_id, self.current_handover_request_id, self.current_send_out_id)
        return [pointer for pointer in pointers if pointer is not None]


@dataclass(frozen=True, slots=True)
class HandoverState:
    id: int
    case_note_request_id: int
    status: str
    handed_over_by_user_id: int
    handed_over_to_user_id: int


@dataclass(frozen=True, slots=True)
class HandoverRequestState:
    id: int
    case_note_request_id: int
    status: str
    requested_by_user_id: int
    current_holder_user_id: int
    verified_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BatchState:
    id: int
    batch_number: str
    status: str
    requested_by_user_id: int | None
    is_verified: bool = False
    approved_count: int | None = None
    received_count: int | None = None


@dataclass(frozen=True, slots=True)
class SendOutState:
    id: int
    send_out_number: str
    status: str
    sent_by_user_id: int
    sent_to_user_id: int
    case_note_ids: tuple[int, ...] = ()
    acknowledged_case_note_ids: tuple[int, ...] = ()

    @property
    def outstanding_ids(self) -> tuple[int, ...]:
        return tuple(i for i in self.case_note_ids if i not in self.acknowledged_case_note_ids)
