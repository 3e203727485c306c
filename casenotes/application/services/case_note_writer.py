from __future__ import annotations

import logging
from datetime import date, datetime
from typing import cast

from sqlalchemy.orm import Session

from casenotes.application.dto.case_note_dto import CaseNoteResponse
from casenotes.application.dto.timeline_dto import RequestEventResponse
from casenotes.domain.errors import ConcurrentModificationError, EntityNotFoundError
from casenotes.domain.models.case_note import ActorRef
from casenotes.domain.models.transition import Rejected, Transition
from casenotes.domain.rules.batch_rules import count_children, derive_batch_status
from casenotes.domain.rules.case_note_rules import days_to_complete, is_overdue
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteRequest, RequestEvent
from casenotes.infrastructure.db.repositories.batch_repo import BatchRepository
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.event_repo import RequestEventRepository
from casenotes.infrastructure.db.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


def to_case_note_response(row: CaseNoteRequest, *, today: date) -> CaseNoteResponse:
    response = CaseNoteResponse.model_validate(row)
    return response.model_copy(
        update={
            "is_overdue": is_overdue(cast(date | None, row.needed_date), str(row.status), today),
            "days_to_complete": days_to_complete(
                cast(datetime | None, row.created_at),
                cast(datetime | None, row.completed_at),
            ),
        }
    )


class CaseNoteWriter:
    """Persists planned transitions: conditional row update plus its timeline event."""

    def __init__(
        self,
        case_note_repo: CaseNoteRepository | None = None,
        event_repo: RequestEventRepository | None = None,
        user_repo: UserRepository | None = None,
        batch_repo: BatchRepository | None = None,
    ) -> None:
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.event_repo = event_repo or RequestEventRepository()
        self.user_repo = user_repo or UserRepository()
        self.batch_repo = batch_repo or BatchRepository()

    def load_note(self, session: Session, note_id: int) -> CaseNoteRequest:
        row = self.case_note_repo.get(session, note_id)
        if row is None:
            raise EntityNotFoundError("case note", note_id)
        return row

    def load_actor(self, session: Session, user_id: int) -> ActorRef:
        user = self.user_repo.get_by_id(session, user_id)
        if user is None:
            raise EntityNotFoundError("user", user_id)
        return ActorRef(id=cast(int, user.id), name=cast(str, user.name))

    def commit(
        self,
        session: Session,
        row: CaseNoteRequest,
        transition: Transition,
        *,
        now: datetime,
        to_location_id: int | None = None,
        to_person: str | None = None,
    ) -> tuple[CaseNoteRequest, RequestEvent]:
        note_id = cast(int, row.id)
        request_number = str(row.request_number)
        try:
            updated = self.case_note_repo.apply_transition(
                session,
                note_id,
                expected_status=transition.expected_status,
                expected_version=cast(int, row.version),
                values=transition.values,
                now=now,
            )
        except ConcurrentModificationError:
            logger.warning(
                "Concurrent modification of case note %s during '%s'",
                request_number,
                transition.event.type,
            )
            raise
        event = self.event_repo.append(
            session,
            request_id=note_id,
            draft=transition.event,
            to_location_id=to_location_id,
            to_person=to_person,
        )
        if transition.new_status != transition.expected_status and updated.batch_id is not None:
            self.refresh_batch_status(session, cast(int, updated.batch_id), now=now)
        logger.info(
            "Case note %s %s: %s -> %s (user %s)",
            request_number,
            transition.event.type,
            transition.expected_status,
            transition.new_status,
            transition.event.actor_user_id,
        )
        return updated, event

    def refresh_batch_status(self, session: Session, batch_id: int, *, now: datetime) -> str:
        """Recompute the batch aggregate from its children and refresh the approved-count cache."""
        batch = self.batch_repo.get(session, batch_id)
        if batch is None:
            raise EntityNotFoundError("batch request", batch_id)
        counts = count_children(self.batch_repo.child_statuses(session, batch_id))
        current = str(batch.status)
        derived = derive_batch_status(current, counts)
        if derived == current and batch.approved_count == counts.approved:
            return current
        self.batch_repo.update_where(
            session,
            batch_id,
            expected={"status": current},
            values={"status": derived, "approved_count": counts.approved},
            now=now,
        )
        if derived != current:
            logger.info("Batch %s status %s -> %s", batch.batch_number, current, derived)
        return derived

    def log_rejected(self, action: str, subject: str, rejected: Rejected) -> Rejected:
        logger.warning("%s rejected for %s [%s]: %s", action, subject, rejected.code, rejected.reason)
        return rejected

    def event_response(self, event: RequestEvent) -> RequestEventResponse:
        return RequestEventResponse(
            id=cast(int, event.id),
            request_id=cast(int, event.request_id),
            type=str(event.type),
            actor_user_id=cast(int | None, event.actor_user_id),
            to_location_id=cast(int | None, event.to_location_id),
            to_person=cast(str | None, event.to_person),
            reason=cast(str | None, event.reason),
            occurred_at=cast(datetime, event.occurred_at),
            metadata=self.event_repo.load_metadata(event),
        )
