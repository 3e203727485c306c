from __future__ import annotations

import logging
from collections.abc import Callable
from typing import cast

from sqlalchemy.exc import IntegrityError

from casenotes.application.dto.custody_dto import (
    HandoverDecisionRequest,
    HandoverRequestCreate,
    HandoverRequestResponse,
)
from casenotes.application.services.case_note_writer import CaseNoteWriter
from casenotes.application.services.handover_service import is_unique_violation
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.domain.constants import HandoverRequestStatus
from casenotes.domain.errors import ConcurrentModificationError, EntityNotFoundError
from casenotes.domain.models.transition import Ok, Rejected, TransitionResult
from casenotes.domain.rules.custody_rules import (
    plan_request_handover,
    plan_respond_handover_request,
    plan_verify_handover_request,
)
from casenotes.infrastructure.db.models_sqlalchemy import HandoverRequest
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.handover_request_repo import HandoverRequestRepository
from casenotes.infrastructure.db.session import session_scope


class HandoverRequestService:
    """Receiver-initiated pull of custody, decided by the current holder."""

    def __init__(
        self,
        repo: HandoverRequestRepository | None = None,
        case_note_repo: CaseNoteRepository | None = None,
        writer: CaseNoteWriter | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or HandoverRequestRepository()
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.writer = writer or CaseNoteWriter(case_note_repo=self.case_note_repo)
        self.session_factory = session_factory
        self.clock = clock
        self._logger = logging.getLogger(__name__)

    def create(self, note_id: int, request: HandoverRequestCreate, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            row = self.writer.load_note(session, note_id)
            request_number = str(row.request_number)
            state = self.case_note_repo.to_state(row)
            planned = plan_request_handover(state, actor, now=now, reason=request.reason, priority=request.priority)
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("handover request", request_number, planned)
            try:
                handover_request = self.repo.create(
                    session,
                    case_note_request_id=note_id,
                    requested_by_user_id=actor.id,
                    current_holder_user_id=cast(int, state.current_pic_user_id),
                    department_id=request.department_id,
                    location_id=request.location_id,
                    doctor_id=request.doctor_id,
                    reason=request.reason,
                    priority=request.priority,
                    now=now,
                )
            except IntegrityError as exc:
                if not is_unique_violation(exc):
                    raise
                self._logger.warning("Second pending handover request refused for case note %s", request_number)
                raise ConcurrentModificationError("case note", note_id) from exc
            request_id = cast(int, handover_request.id)
            planned = planned.with_values(current_handover_request_id=request_id).with_metadata(
                handover_request_id=request_id
            )
            _, event = self.writer.commit(session, row, planned, now=now)
            return Ok(
                HandoverRequestResponse.model_validate(handover_request),
                events=(self.writer.event_response(event),),
            )

    def respond(self, request_id: int, decision: HandoverDecisionRequest, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            handover_request = self._load(session, request_id)
            row = self.writer.load_note(session, cast(int, handover_request.case_note_request_id))
            planned = plan_respond_handover_request(
                self.repo.to_state(handover_request),
                self.case_note_repo.to_state(row),
                actor,
                approve=decision.approve,
                now=now,
                notes=decision.notes,
            )
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("handover response", f"handover request {request_id}", planned)
            new_status = HandoverRequestStatus.APPROVED if decision.approve else HandoverRequestStatus.REJECTED
            handover_request = self.repo.update_where(
                session,
                request_id,
                expected={"status": HandoverRequestStatus.PENDING.value},
                values={
                    "status": new_status.value,
                    "responded_at": now,
                    "responded_by_user_id": actor.id,
                    "response_notes": decision.notes,
                },
                now=now,
            )
            _, event = self.writer.commit(session, row, planned, now=now)
            return Ok(
                HandoverRequestResponse.model_validate(handover_request),
                events=(self.writer.event_response(event),),
            )

    def verify(self, request_id: int, actor_id: int, notes: str | None = None) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            handover_request = self._load(session, request_id)
            row = self.writer.load_note(session, cast(int, handover_request.case_note_request_id))
            planned = plan_verify_handover_request(
                self.repo.to_state(handover_request),
                self.case_note_repo.to_state(row),
                actor,
                now=now,
                notes=notes,
            )
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("handover verify", f"handover request {request_id}", planned)
            handover_request = self.repo.update_where(
                session,
                request_id,
                expected={"status": HandoverRequestStatus.APPROVED.value, "verified_at": None},
                values={"verified_at": now, "verification_notes": notes},
                now=now,
            )
            _, event = self.writer.commit(session, row, planned, now=now)
            return Ok(
                HandoverRequestResponse.model_validate(handover_request),
                events=(self.writer.event_response(event),),
            )

    def list_incoming(self, holder_id: int) -> list[HandoverRequestResponse]:
        with self.session_factory() as session:
            rows = self.repo.list_for_holder(session, holder_id, status=HandoverRequestStatus.PENDING.value)
            return [HandoverRequestResponse.model_validate(r) for r in rows]

    def list_mine(self, requester_id: int) -> list[HandoverRequestResponse]:
        with self.session_factory() as session:
            rows = self.repo.list_for_requester(session, requester_id)
            return [HandoverRequestResponse.model_validate(r) for r in rows]

    def _load(self, session, request_id: int) -> HandoverRequest:
        handover_request = self.repo.get(session, request_id)
        if handover_request is None:
            raise EntityNotFoundError("handover request", request_id)
        return handover_request
