from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.orm import Session

from casenotes.domain.constants import HandoverRequestStatus
from casenotes.domain.models.case_note import HandoverRequestState
from casenotes.infrastructure.db.models_sqlalchemy import HandoverRequest
from casenotes.infrastructure.db.repositories.conditional import conditional_update


class HandoverRequestRepository:
    def get(self, session: Session, request_id: int) -> HandoverRequest | None:
        return session.get(HandoverRequest, request_id, populate_existing=True)

    def create(
        self,
        session: Session,
        *,
        case_note_request_id: int,
        requested_by_user_id: int,
        current_holder_user_id: int,
        department_id: int | None,
        location_id: int | None,
        doctor_id: int | None,
        reason: str | None,
        priority: str,
        now: datetime,
    ) -> HandoverRequest:
        row = HandoverRequest(
            case_note_request_id=case_note_request_id,
            requested_by_user_id=requested_by_user_id,
            current_holder_user_id=current_holder_user_id,
            department_id=department_id,
            location_id=location_id,
            doctor_id=doctor_id,
            reason=reason,
            priority=priority,
            status=HandoverRequestStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()
        return row

    def update_where(
        self,
        session: Session,
        request_id: int,
        *,
        expected: dict[str, Any],
        values: dict[str, Any],
        now: datetime,
    ) -> HandoverRequest:
        conditional_update(
            session,
            HandoverRequest,
            request_id,
            expected=expected,
            values={**values, "updated_at": now},
            entity="handover request",
        )
        return cast(HandoverRequest, self.get(session, request_id))

    def list_for_holder(self, session: Session, user_id: int, *, status: str | None = None) -> list[HandoverRequest]:
        stmt = select(HandoverRequest).where(HandoverRequest.current_holder_user_id == user_id)
        if status:
            stmt = stmt.where(HandoverRequest.status == status)
        stmt = stmt.order_by(HandoverRequest.created_at.desc(), HandoverRequest.id.desc())
        return list(session.execute(stmt).scalars())

    def list_for_requester(
        self, session: Session, user_id: int, *, status: str | None = None
    ) -> list[HandoverRequest]:
        stmt = select(HandoverRequest).where(HandoverRequest.requested_by_user_id == user_id)
        if status:
            stmt = stmt.where(HandoverRequest.status == status)
        stmt = stmt.order_by(HandoverRequest.created_at.desc(), HandoverRequest.id.desc())
        return list(session.execute(stmt).scalars())

    def to_state(self, row: HandoverRequest) -> HandoverRequestState:
        return HandoverRequestState(
            id=cast(int, row.id),
            case_note_request_id=cast(int, row.case_note_request_id),
            status=cast(str, row.status),
            requested_by_user_id=cast(int, row.requested_by_user_id),
            current_holder_user_id=cast(int, row.current_holder_user_id),
            verified_at=cast(datetime | None, row.verified_at),
        )
