from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time
from typing import Any, cast

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from casenotes.domain.constants import CLOSED_STATUSES, HOLDABLE_STATUSES, RequestStatus
from casenotes.domain.errors import EntityNotFoundError
from casenotes.domain.models.case_note import CaseNoteState
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteRequest
from casenotes.infrastructure.db.repositories.conditional import conditional_update


class CaseNoteRepository:
    def get(self, session: Session, note_id: int, *, include_deleted: bool = False) -> CaseNoteRequest | None:
        stmt = select(CaseNoteRequest).where(CaseNoteRequest.id == note_id)
        if not include_deleted:
            stmt = stmt.where(CaseNoteRequest.deleted_at.is_(None))
        return session.execute(stmt).unique().scalar_one_or_none()

    def get_by_number(self, session: Session, request_number: str) -> CaseNoteRequest | None:
        stmt = select(CaseNoteRequest).where(
            CaseNoteRequest.request_number == request_number,
            CaseNoteRequest.deleted_at.is_(None),
        )
        return session.execute(stmt).unique().scalar_one_or_none()

    def list_by_ids(self, session: Session, note_ids: Iterable[int]) -> list[CaseNoteRequest]:
        ids = list(note_ids)
        if not ids:
            return []
        stmt = (
            select(CaseNoteRequest)
            .where(CaseNoteRequest.id.in_(ids), CaseNoteRequest.deleted_at.is_(None))
            .order_by(CaseNoteRequest.id.asc())
        )
        return list(session.execute(stmt).unique().scalars())

    def create(
        self,
        session: Session,
        *,
        request_number: str,
        patient_id: int,
        requested_by_user_id: int,
        department_id: int | None,
        doctor_id: int | None,
        location_id: int | None,
        priority: str,
        purpose: str,
        needed_date: date | None,
        remarks: str | None,
        created_at: datetime,
        batch_id: int | None = None,
    ) -> CaseNoteRequest:
        note = CaseNoteRequest(
            request_number=request_number,
            patient_id=patient_id,
            requested_by_user_id=requested_by_user_id,
            department_id=department_id,
            doctor_id=doctor_id,
            location_id=location_id,
            batch_id=batch_id,
            priority=priority,
            purpose=purpose,
            needed_date=needed_date,
            remarks=remarks,
            status=RequestStatus.PENDING.value,
            version=1,
            current_pic_user_id=requested_by_user_id,
            handover_status="none",
            created_at=created_at,
            updated_at=created_at,
        )
        session.add(note)
        session.flush()
        return note

    def apply_transition(
        self,
        session: Session,
        note_id: int,
        *,
        expected_status: str,
        expected_version: int,
        values: dict[str, Any],
        now: datetime,
    ) -> CaseNoteRequest:
        conditional_update(
            session,
            CaseNoteRequest,
            note_id,
            expected={"status": expected_status, "version": expected_version, "deleted_at": None},
            values={**values, "version": expected_version + 1, "updated_at": now},
            entity="case note",
        )
        row = self.get(session, note_id)
        if row is None:
            raise EntityNotFoundError("case note", note_id)
        session.refresh(row)
        return row

    def soft_delete(self, session: Session, note_id: int, *, expected_version: int, now: datetime) -> None:
        conditional_update(
            session,
            CaseNoteRequest,
            note_id,
            expected={"version": expected_version, "deleted_at": None},
            values={"deleted_at": now, "version": expected_version + 1, "updated_at": now},
            entity="case note",
        )

    def list_filtered(
        self,
        session: Session,
        *,
        today: date,
        status: str | None = None,
        priority: str | None = None,
        department_id: int | None = None,
        patient_id: int | None = None,
        requested_by_user_id: int | None = None,
        current_pic_user_id: int | None = None,
        overdue: bool | None = None,
        created_from: date | None = None,
        created_to: date | None = None,
        limit: int = 200,
    ) -> list[CaseNoteRequest]:
        stmt: Any = select(CaseNoteRequest).where(CaseNoteRequest.deleted_at.is_(None))
        if status:
            stmt = stmt.where(CaseNoteRequest.status == status)
        if priority:
            stmt = stmt.where(CaseNoteRequest.priority == priority)
        if department_id is not None:
            stmt = stmt.where(CaseNoteRequest.department_id == department_id)
        if patient_id is not None:
            stmt = stmt.where(CaseNoteRequest.patient_id == patient_id)
        if requested_by_user_id is not None:
            stmt = stmt.where(CaseNoteRequest.requested_by_user_id == requested_by_user_id)
        if current_pic_user_id is not None:
            stmt = stmt.where(CaseNoteRequest.current_pic_user_id == current_pic_user_id)
        if created_from:
            stmt = stmt.where(CaseNoteRequest.created_at >= datetime.combine(created_from, time.min))
        if created_to:
            stmt = stmt.where(CaseNoteRequest.created_at <= datetime.combine(created_to, time.max))
        if overdue is True:
            stmt = stmt.where(self._overdue_clause(today))
        elif overdue is False:
            stmt = stmt.where(
                or_(
                    CaseNoteRequest.needed_date.is_(None),
                    CaseNoteRequest.needed_date >= today,
                    CaseNoteRequest.status.in_(sorted(CLOSED_STATUSES)),
                )
            )
        stmt = stmt.order_by(CaseNoteRequest.created_at.desc(), CaseNoteRequest.id.desc()).limit(limit)
        return list(session.execute(stmt).unique().scalars())

    def list_by_batch(self, session: Session, batch_id: int) -> list[CaseNoteRequest]:
        stmt = (
            select(CaseNoteRequest)
            .where(CaseNoteRequest.batch_id == batch_id, CaseNoteRequest.deleted_at.is_(None))
            .order_by(CaseNoteRequest.id.asc())
        )
        return list(session.execute(stmt).unique().scalars())

    def list_for_patients(self, session: Session, patient_ids: Iterable[int]) -> list[CaseNoteRequest]:
        ids = list(patient_ids)
        if not ids:
            return []
        stmt = (
            select(CaseNoteRequest)
            .where(CaseNoteRequest.patient_id.in_(ids), CaseNoteRequest.deleted_at.is_(None))
            .order_by(CaseNoteRequest.id.asc())
        )
        return list(session.execute(stmt).unique().scalars())

    def list_returnable(self, session: Session, user_id: int) -> list[CaseNoteRequest]:
        stmt = (
            select(CaseNoteRequest)
            .where(
                CaseNoteRequest.deleted_at.is_(None),
                CaseNoteRequest.current_pic_user_id == user_id,
                CaseNoteRequest.status.in_(sorted(HOLDABLE_STATUSES)),
                CaseNoteRequest.is_received.is_(True),
                or_(CaseNoteRequest.is_returned.is_(False), CaseNoteRequest.is_rejected_return.is_(True)),
                CaseNoteRequest.current_handover_id.is_(None),
                CaseNoteRequest.current_handover_request_id.is_(None),
            )
            .order_by(CaseNoteRequest.received_at.asc(), CaseNoteRequest.id.asc())
        )
        return list(session.execute(stmt).unique().scalars())

    def list_pending_return_verification(self, session: Session) -> list[CaseNoteRequest]:
        stmt = (
            select(CaseNoteRequest)
            .where(
                CaseNoteRequest.deleted_at.is_(None),
                CaseNoteRequest.status == RequestStatus.PENDING_RETURN_VERIFICATION.value,
            )
            .order_by(CaseNoteRequest.returned_at.asc(), CaseNoteRequest.id.asc())
        )
        return list(session.execute(stmt).unique().scalars())

    def list_unverified_receipts(self, session: Session, *, approved_before: datetime) -> list[CaseNoteRequest]:
        stmt = (
            select(CaseNoteRequest)
            .where(
                CaseNoteRequest.deleted_at.is_(None),
                CaseNoteRequest.status == RequestStatus.APPROVED.value,
                CaseNoteRequest.is_received.is_(False),
                CaseNoteRequest.approved_at <= approved_before,
            )
            .order_by(CaseNoteRequest.requested_by_user_id.asc(), CaseNoteRequest.approved_at.asc())
        )
        return list(session.execute(stmt).unique().scalars())

    def count_by_status(self, session: Session) -> dict[str, int]:
        stmt = (
            select(CaseNoteRequest.status, func.count(CaseNoteRequest.id))
            .where(CaseNoteRequest.deleted_at.is_(None))
            .group_by(CaseNoteRequest.status)
        )
        return {str(status): int(count) for status, count in session.execute(stmt).all()}

    def count_overdue(self, session: Session, *, today: date) -> int:
        stmt = select(func.count(CaseNoteRequest.id)).where(
            CaseNoteRequest.deleted_at.is_(None),
            self._overdue_clause(today),
        )
        return int(session.execute(stmt).scalar_one())

    def to_state(self, row: CaseNoteRequest) -> CaseNoteState:
        return CaseNoteState(
            id=cast(int, row.id),
            request_number=cast(str, row.request_number),
            status=cast(str, row.status),
            version=cast(int, row.version),
            requested_by_user_id=cast(int | None, row.requested_by_user_id),
            current_pic_user_id=cast(int | None, row.current_pic_user_id),
            current_handover_id=cast(int | None, row.current_handover_id),
            current_handover_request_id=cast(int | None, row.current_handover_request_id),
            current_send_out_id=cast(int | None, row.current_send_out_id),
            handover_status=cast(str, row.handover_status),
            is_received=bool(row.is_received),
            is_returned=bool(row.is_returned),
            is_rejected_return=bool(row.is_rejected_return),
            batch_id=cast(int | None, row.batch_id),
            needed_date=cast(date | None, row.needed_date),
            created_at=cast(datetime | None, row.created_at),
            completed_at=cast(datetime | None, row.completed_at),
        )

    def _overdue_clause(self, today: date) -> Any:
        return (
            CaseNoteRequest.needed_date.is_not(None)
            & (CaseNoteRequest.needed_date < today)
            & CaseNoteRequest.status.not_in(sorted(CLOSED_STATUSES))
        )
