from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from casenotes.domain.constants import BatchStatus, RequestStatus
from casenotes.domain.models.case_note import BatchState
from casenotes.infrastructure.db.models_sqlalchemy import BatchRequest, CaseNoteRequest
from casenotes.infrastructure.db.repositories.conditional import conditional_update

_NOT_APPROVED = (RequestStatus.PENDING.value, RequestStatus.REJECTED.value)


class BatchRepository:
    def get(self, session: Session, batch_id: int) -> BatchRequest | None:
        return session.get(BatchRequest, batch_id, populate_existing=True)

    def create(
        self,
        session: Session,
        *,
        batch_number: str,
        requested_by_user_id: int,
        notes: str | None,
        now: datetime,
    ) -> BatchRequest:
        batch = BatchRequest(
            batch_number=batch_number,
            requested_by_user_id=requested_by_user_id,
            status=BatchStatus.PENDING.value,
            notes=notes,
            is_verified=False,
            created_at=now,
            updated_at=now,
        )
        session.add(batch)
        session.flush()
        return batch

    def update_where(
        self,
        session: Session,
        batch_id: int,
        *,
        expected: dict[str, Any],
        values: dict[str, Any],
        now: datetime,
    ) -> BatchRequest:
        conditional_update(
            session,
            BatchRequest,
            batch_id,
            expected=expected,
            values={**values, "updated_at": now},
            entity="batch request",
        )
        return cast(BatchRequest, self.get(session, batch_id))

    def child_statuses(self, session: Session, batch_id: int) -> list[str]:
        stmt = select(CaseNoteRequest.status).where(
            CaseNoteRequest.batch_id == batch_id,
            CaseNoteRequest.deleted_at.is_(None),
        )
        return [str(status) for status in session.execute(stmt).scalars()]

    def live_approved_count(self, session: Session, batch_id: int) -> int:
        stmt = select(func.count(CaseNoteRequest.id)).where(
            CaseNoteRequest.batch_id == batch_id,
            CaseNoteRequest.deleted_at.is_(None),
            CaseNoteRequest.status.not_in(_NOT_APPROVED),
        )
        return int(session.execute(stmt).scalar_one())

    def approved_count(self, session: Session, batch: BatchRequest) -> int:
        """Cached count, falling back to a live count when the cache is empty."""
        cached = cast(int | None, batch.approved_count)
        if cached is not None:
            return cached
        return self.live_approved_count(session, cast(int, batch.id))

    def received_approved_count(self, session: Session, batch_id: int) -> int:
        stmt = select(func.count(CaseNoteRequest.id)).where(
            CaseNoteRequest.batch_id == batch_id,
            CaseNoteRequest.deleted_at.is_(None),
            CaseNoteRequest.status.not_in(_NOT_APPROVED),
            CaseNoteRequest.is_received.is_(True),
        )
        return int(session.execute(stmt).scalar_one())

    def list_batches(
        self,
        session: Session,
        *,
        requested_by_user_id: int | None = None,
        status: str | None = None,
    ) -> list[BatchRequest]:
        stmt = select(BatchRequest)
        if requested_by_user_id is not None:
            stmt = stmt.where(BatchRequest.requested_by_user_id == requested_by_user_id)
        if status:
            stmt = stmt.where(BatchRequest.status == status)
        stmt = stmt.order_by(BatchRequest.created_at.desc(), BatchRequest.id.desc())
        return list(session.execute(stmt).scalars())

    def to_state(self, row: BatchRequest) -> BatchState:
        return BatchState(
            id=cast(int, row.id),
            batch_number=cast(str, row.batch_number),
            status=cast(str, row.status),
            requested_by_user_id=cast(int | None, row.requested_by_user_id),
            is_verified=bool(row.is_verified),
            approved_count=cast(int | None, row.approved_count),
            received_count=cast(int | None, row.received_count),
        )
