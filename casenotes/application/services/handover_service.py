from __future__ import annotations

import logging
from collections.abc import Callable
from typing import cast

from sqlalchemy.exc import IntegrityError

from casenotes.application.dto.custody_dto import HandoverOfferRequest, HandoverResponse
from casenotes.application.services.case_note_writer import CaseNoteWriter
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.domain.constants import HandoverStatus
from casenotes.domain.errors import ConcurrentModificationError, EntityNotFoundError
from casenotes.domain.models.transition import Ok, Rejected, TransitionResult
from casenotes.domain.rules.custody_rules import (
    plan_acknowledge_handover,
    plan_complete_handover,
    plan_offer_handover,
)
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteHandover
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.handover_repo import HandoverRepository
from casenotes.infrastructure.db.session import session_scope


def is_unique_violation(exc: IntegrityError) -> bool:
    return "unique" in str(exc.orig).lower()


class HandoverService:
    """Holder-initiated handover: offer -> acknowledge -> complete."""

    def __init__(
        self,
        repo: HandoverRepository | None = None,
        case_note_repo: CaseNoteRepository | None = None,
        writer: CaseNoteWriter | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or HandoverRepository()
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.writer = writer or CaseNoteWriter(case_note_repo=self.case_note_repo)
        self.session_factory = session_factory
        self.clock = clock
        self._logger = logging.getLogger(__name__)

    def offer(self, note_id: int, request: HandoverOfferRequest, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            recipient = self.writer.load_actor(session, request.to_user_id)
            row = self.writer.load_note(session, note_id)
            request_number = str(row.request_number)
            planned = plan_offer_handover(
                self.case_note_repo.to_state(row),
                actor,
                to_user_id=recipient.id,
                now=now,
                reason=request.reason,
            )
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("handover offer", request_number, planned)
            try:
                handover = self.repo.create(
                    session,
                    case_note_request_id=note_id,
                    handed_over_by_user_id=actor.id,
                    handed_over_to_user_id=recipient.id,
                    department_id=request.department_id,
                    location_id=request.location_id,
                    doctor_id=request.doctor_id,
                    reason=request.reason,
                    handover_notes=request.handover_notes,
                    now=now,
                )
            except IntegrityError as exc:
                if not is_unique_violation(exc):
                    raise
                self._logger.warning("Second in-flight handover refused for case note %s", request_number)
                raise ConcurrentModificationError("case note", note_id) from exc
            handover_id = cast(int, handover.id)
            planned = planned.with_values(current_handover_id=handover_id).with_metadata(
                handover_id=handover_id,
                handed_over_to_name=recipient.name,
            )
            _, event = self.writer.commit(
                session,
                row,
                planned,
                now=now,
                to_location_id=request.location_id,
                to_person=recipient.name,
            )
            return Ok(HandoverResponse.model_validate(handover), events=(self.writer.event_response(event),))

    def acknowledge(self, handover_id: int, actor_id: int, notes: str | None = None) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            handover = self._load(session, handover_id)
            row = self.writer.load_note(session, cast(int, handover.case_note_request_id))
            planned = plan_acknowledge_handover(
                self.repo.to_state(handover),
                self.case_note_repo.to_state(row),
                actor,
                now=now,
                notes=notes,
            )
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("handover acknowledge", f"handover {handover_id}", planned)
            handover = self.repo.set_status(
                session,
                handover_id,
                expected_status=HandoverStatus.PENDING.value,
                values={
                    "status": HandoverStatus.ACKNOWLEDGE.value,
                    "acknowledged_at": now,
                    "acknowledged_by_user_id": actor.id,
                    "acknowledgement_notes": notes,
                },
                now=now,
            )
            _, event = self.writer.commit(session, row, planned, now=now)
            return Ok(HandoverResponse.model_validate(handover), events=(self.writer.event_response(event),))

    def complete(self, handover_id: int, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            handover = self._load(session, handover_id)
            row = self.writer.load_note(session, cast(int, handover.case_note_request_id))
            planned = plan_complete_handover(
                self.repo.to_state(handover),
                self.case_note_repo.to_state(row),
                actor,
                now=now,
            )
            if isinstance(planned, Rejected):
                return self.writer.log_rejected("handover complete", f"handover {handover_id}", planned)
            handover = self.repo.set_status(
                session,
                handover_id,
                expected_status=HandoverStatus.ACKNOWLEDGE.value,
                values={"status": HandoverStatus.COMPLETED.value, "completed_at": now},
                now=now,
            )
            _, event = self.writer.commit(session, row, planned, now=now)
            return Ok(HandoverResponse.model_validate(handover), events=(self.writer.event_response(event),))

    def get(self, handover_id: int) -> HandoverResponse:
        with self.session_factory() as session:
            return HandoverResponse.model_validate(self._load(session, handover_id))

    def list_for_note(self, note_id: int) -> list[HandoverResponse]:
        with self.session_factory() as session:
            return [HandoverResponse.model_validate(h) for h in self.repo.list_for_note(session, note_id)]

    def list_incoming(self, user_id: int) -> list[HandoverResponse]:
        with self.session_factory() as session:
            return [HandoverResponse.model_validate(h) for h in self.repo.list_incoming(session, user_id)]

    def _load(self, session, handover_id: int) -> CaseNoteHandover:
        handover = self.repo.get(session, handover_id)
        if handover is None:
            raise EntityNotFoundError("handover", handover_id)
        return handover
