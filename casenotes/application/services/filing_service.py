from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from sqlalchemy.orm import Session

from casenotes.application.dto.filing_dto import FilingCreateRequest, FilingDecisionRequest, FilingResponse
from casenotes.application.dto.timeline_dto import RequestEventResponse
from casenotes.application.services.case_note_writer import CaseNoteWriter
from casenotes.application.services.sequence_service import SequenceService
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.domain.constants import EventType, FilingStatus, SequenceScope
from casenotes.domain.errors import EntityNotFoundError
from casenotes.domain.models.case_note import ActorRef
from casenotes.domain.models.transition import EventDraft, Ok, Rejected, TransitionResult
from casenotes.infrastructure.db.models_sqlalchemy import FilingRequest
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.event_repo import RequestEventRepository
from casenotes.infrastructure.db.repositories.filing_repo import FilingRepository
from casenotes.infrastructure.db.repositories.reference_repo import ReferenceRepository
from casenotes.infrastructure.db.session import session_scope


class FilingService:
    """Terminal archiving requests for whole patients or for individual case notes."""

    def __init__(
        self,
        repo: FilingRepository | None = None,
        case_note_repo: CaseNoteRepository | None = None,
        event_repo: RequestEventRepository | None = None,
        ref_repo: ReferenceRepository | None = None,
        writer: CaseNoteWriter | None = None,
        sequence_service: SequenceService | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or FilingRepository()
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.event_repo = event_repo or RequestEventRepository()
        self.ref_repo = ref_repo or ReferenceRepository()
        self.writer = writer or CaseNoteWriter(case_note_repo=self.case_note_repo, event_repo=self.event_repo)
        self.session_factory = session_factory
        self.clock = clock
        self.sequence_service = sequence_service or SequenceService(session_factory=session_factory, clock=clock)
        self._logger = logging.getLogger(__name__)

    def submit(self, request: FilingCreateRequest, actor_id: int) -> Ok[FilingResponse]:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            patient_ids = list(dict.fromkeys(request.patient_ids))
            case_note_ids = list(dict.fromkeys(request.case_note_ids))
            if request.filing_type == "patient":
                patients = self.ref_repo.get_patients(session, patient_ids)
                missing = [pid for pid in patient_ids if pid not in patients]
                if missing:
                    raise EntityNotFoundError("patient", missing[0])
                expected = request.expected_case_notes_count
                if expected is None:
                    expected = len(self.case_note_repo.list_for_patients(session, patient_ids))
            else:
                rows = self.case_note_repo.list_by_ids(session, case_note_ids)
                found = {cast(int, row.id) for row in rows}
                missing = [nid for nid in case_note_ids if nid not in found]
                if missing:
                    raise EntityNotFoundError("case note", missing[0])
                expected = request.expected_case_notes_count
                if expected is None:
                    expected = len(case_note_ids)

            filing_number = self.sequence_service.allocate_number(session, SequenceScope.FILING, now)
            filing = self.repo.create(
                session,
                filing_number=filing_number,
                submitted_by_user_id=actor.id,
                filing_type=request.filing_type,
                patient_ids=patient_ids,
                case_note_ids=case_note_ids,
                expected_case_notes_count=expected,
                submission_notes=request.submission_notes,
                now=now,
            )
            events = self._append_events(
                session,
                filing,
                EventType.FILING_SUBMITTED,
                actor,
                now=now,
                notes=request.submission_notes,
            )
            if request.filing_type == "patient":
                self._logger.info(
                    "Filing %s submitted for %s patients (%s case notes) by user %s",
                    filing_number,
                    len(patient_ids),
                    expected,
                    actor.id,
                )
            else:
                self._logger.info(
                    "Filing %s submitted for %s case notes by user %s", filing_number, len(case_note_ids), actor.id
                )
            return Ok(self._response(filing), events=events)

    def decide(self, filing_id: int, decision: FilingDecisionRequest, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            filing = self._load(session, filing_id)
            if filing.status != FilingStatus.PENDING:
                rejected = Rejected("already_decided", f"Filing {filing.filing_number} is already {filing.status}")
                return self.writer.log_rejected("filing decision", str(filing.filing_number), rejected)
            if decision.approve:
                values = {
                    "status": FilingStatus.APPROVED.value,
                    "approved_at": now,
                    "approved_by_user_id": actor.id,
                    "approval_notes": decision.notes,
                }
                event_type = EventType.FILING_APPROVED
            else:
                values = {
                    "status": FilingStatus.REJECTED.value,
                    "rejection_reason": decision.notes,
                    "rejected_at": now,
                    "rejected_by_user_id": actor.id,
                }
                event_type = EventType.FILING_REJECTED
            filing = self.repo.decide(session, filing_id, values=values, now=now)
            events = self._append_events(session, filing, event_type, actor, now=now, notes=decision.notes)
            self._logger.info("Filing %s %s by user %s", filing.filing_number, filing.status, actor.id)
            return Ok(self._response(filing), events=events)

    def approve(self, filing_id: int, actor_id: int, notes: str | None = None) -> TransitionResult:
        return self.decide(filing_id, FilingDecisionRequest(approve=True, notes=notes), actor_id)

    def reject(self, filing_id: int, reason: str, actor_id: int) -> TransitionResult:
        return self.decide(filing_id, FilingDecisionRequest(approve=False, notes=reason), actor_id)

    def get(self, filing_id: int) -> FilingResponse:
        with self.session_factory() as session:
            return self._response(self._load(session, filing_id))

    def list(self, status: str | None = None, submitted_by_user_id: int | None = None) -> list[FilingResponse]:
        with self.session_factory() as session:
            rows = self.repo.list_requests(session, status=status, submitted_by_user_id=submitted_by_user_id)
            return [self._response(row) for row in rows]

    def _append_events(
        self,
        session: Session,
        filing: FilingRequest,
        event_type: EventType,
        actor: ActorRef,
        *,
        now: datetime,
        notes: str | None,
    ) -> tuple[RequestEventResponse, ...]:
        if filing.filing_type != "case_note":
            return ()
        case_note_ids = self._response(filing).case_note_ids
        events = []
        for row in self.case_note_repo.list_by_ids(session, case_note_ids):
            metadata = {
                "request_number": row.request_number,
                "actor_name": actor.name,
                "filing_id": filing.id,
                "filing_number": filing.filing_number,
                "notes": notes,
            }
            event = self.event_repo.append(
                session,
                request_id=cast(int, row.id),
                draft=EventDraft(
                    type=event_type.value,
                    actor_user_id=actor.id,
                    occurred_at=now,
                    reason=notes if event_type == EventType.FILING_REJECTED else None,
                    metadata={k: v for k, v in metadata.items() if v is not None},
                ),
            )
            events.append(self.writer.event_response(event))
        return tuple(events)

    def _load(self, session: Session, filing_id: int) -> FilingRequest:
        filing = self.repo.get(session, filing_id)
        if filing is None:
            raise EntityNotFoundError("filing request", filing_id)
        return filing

    def _response(self, filing: FilingRequest) -> FilingResponse:
        return FilingResponse.model_validate(self.repo.to_dict(filing))
