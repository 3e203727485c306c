from __future__ import annotations

from collections.abc import Callable

from casenotes.application.dto.case_note_dto import CaseNoteResponse, RejectionRequest
from casenotes.application.services.case_note_writer import CaseNoteWriter, to_case_note_response
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.domain.models.transition import Ok, Rejected, TransitionResult
from casenotes.domain.rules.case_note_rules import plan_reject_return, plan_return, plan_verify_return
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.session import session_scope


class ReturnService:
    """CA -> Medical Records custody transfer with verify/reject loop."""

    def __init__(
        self,
        repo: CaseNoteRepository | None = None,
        writer: CaseNoteWriter | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or CaseNoteRepository()
        self.writer = writer or CaseNoteWriter(case_note_repo=self.repo)
        self.session_factory = session_factory
        self.clock = clock

    def mark_returned(self, note_id: int, actor_id: int, notes: str | None = None) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            row = self.writer.load_note(session, note_id)
            planned = plan_return(self.repo.to_state(row), actor, now=now, notes=notes)
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("return", str(row.request_number), planned)
            updated, event = self.writer.commit(session, row, planned, now=now)
            return Ok(to_case_note_response(updated, today=now.date()), events=(self.writer.event_response(event),))

    def verify_return(self, note_id: int, actor_id: int, notes: str | None = None) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            row = self.writer.load_note(session, note_id)
            planned = plan_verify_return(self.repo.to_state(row), actor, now=now, notes=notes)
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("verify_return", str(row.request_number), planned)
            updated, event = self.writer.commit(session, row, planned, now=now)
            return Ok(to_case_note_response(updated, today=now.date()), events=(self.writer.event_response(event),))

    def reject_return(self, note_id: int, request: RejectionRequest, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            row = self.writer.load_note(session, note_id)
            planned = plan_reject_return(self.repo.to_state(row), actor, now=now, reason=request.reason)
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("reject_return", str(row.request_number), planned)
            updated, event = self.writer.commit(session, row, planned, now=now)
            return Ok(to_case_note_response(updated, today=now.date()), events=(self.writer.event_response(event),))

    def list_returnable(self, user_id: int) -> list[CaseNoteResponse]:
        today = normalize_datetime(self.clock()).date()
        with self.session_factory() as session:
            return [to_case_note_response(row, today=today) for row in self.repo.list_returnable(session, user_id)]

    def list_pending_verification(self) -> list[CaseNoteResponse]:
        today = normalize_datetime(self.clock()).date()
        with self.session_factory() as session:
            rows = self.repo.list_pending_return_verification(session)
            return [to_case_note_response(row, today=today) for row in rows]
