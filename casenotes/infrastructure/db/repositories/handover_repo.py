from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from casenotes.domain.constants import HandoverStatus
from casenotes.domain.models.case_note import HandoverState
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteHandover
from casenotes.infrastructure.db.repositories.conditional import conditional_update


class HandoverRepository:
    def get(self, session: Session, handover_id: int) -> CaseNoteHandover | None:
        return session.get(CaseNoteHandover, handover_id, populate_existing=True)

    def create(
        self,
        session: Session,
        *,
        case_note_request_id: int,
        handed_over_by_user_id: int,
        handed_over_to_user_id: int,
        department_id: int | None,
        location_id: int | None,
        doctor_id: int | None,
        reason: str | None,
        handover_notes: str | None,
        now: datetime,
    ) -> CaseNoteHandover:
        handover = CaseNoteHandover(
            case_note_request_id=case_note_request_id,
            handed_over_by_user_id=handed_over_by_user_id,
            handed_over_to_user_id=handed_over_to_user_id,
            department_id=department_id,
            location_id=location_id,
            doctor_id=doctor_id,
            reason=reason,
            handover_notes=handover_notes,
            status=HandoverStatus.PENDING.value,
            handed_over_at=now,
            created_at=now,
            updated_at=now,
        )
        session.add(handover)
        session.flush()
        return handover

    def set_status(
        self,
        session: Session,
        handover_id: int,
        *,
        expected_status: str,
        values: dict[str, Any],
        now: datetime,
    ) -> CaseNoteHandover:
        conditional_update(
            session,
            CaseNoteHandover,
            handover_id,
            expected={"status": expected_status},
            values={**values, "updated_at": now},
            entity="handover",
        )
        return cast(CaseNoteHandover, self.get(session, handover_id))

    def list_for_note(self, session: Session, case_note_request_id: int) -> list[CaseNoteHandover]:
        stmt = (
            select(CaseNoteHandover)
            .where(CaseNoteHandover.case_note_request_id == case_note_request_id)
            .order_by(CaseNoteHandover.handed_over_at.asc(), CaseNoteHandover.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def list_incoming(self, session: Session, user_id: int) -> list[CaseNoteHandover]:
        stmt = (
            select(CaseNoteHandover)
            .where(
                CaseNoteHandover.handed_over_to_user_id == user_id,
                CaseNoteHandover.status.in_(HandoverStatus.in_flight()),
            )
            .order_by(CaseNoteHandover.handed_over_at.asc())
        )
        return list(session.execute(stmt).scalars())

    def count_in_flight(self, session: Session, case_note_request_id: int) -> int:
        stmt = select(func.count(CaseNoteHandover.id)).where(
            CaseNoteHandover.case_note_request_id == case_note_request_id,
            CaseNoteHandover.status.in_(HandoverStatus.in_flight()),
        )
        return int(session.execute(stmt).scalar_one())

    def to_state(self, row: CaseNoteHandover) -> HandoverState:
        return HandoverState(
            id=cast(int, row.id),
            case_note_request_id=cast(int, row.case_note_request_id),
            status=cast(str, row.status),
            handed_over_by_user_id=cast(int, row.handed_over_by_user_id),
            handed_over_to_user_id=cast(int, row.handed_over_to_user_id),
        )
