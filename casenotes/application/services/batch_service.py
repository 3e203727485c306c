from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import cast

from sqlalchemy.orm import Session

from casenotes.application.dto.batch_dto import (
    BatchCreateRequest,
    BatchIndividualVerifyRequest,
    BatchProcessRequest,
    BatchResponse,
    BatchVerifyRequest,
)
from casenotes.application.dto.case_note_dto import CaseNoteCreateRequest
from casenotes.application.dto.timeline_dto import RequestEventResponse
from casenotes.application.services.case_note_service import CaseNoteService
from casenotes.application.services.case_note_writer import CaseNoteWriter, to_case_note_response
from casenotes.application.services.sequence_service import SequenceService
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.domain.constants import BatchStatus, EventType, RequestStatus, SequenceScope
from casenotes.domain.errors import EntityNotFoundError
from casenotes.domain.models.case_note import ActorRef
from casenotes.domain.models.transition import EventDraft, Ok, Rejected, TransitionResult
from casenotes.domain.rules.batch_rules import can_be_processed, check_received_count
from casenotes.domain.rules.case_note_rules import plan_approve, plan_mark_received, plan_reject
from casenotes.infrastructure.db.models_sqlalchemy import BatchRequest
from casenotes.infrastructure.db.repositories.batch_repo import BatchRepository
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.event_repo import RequestEventRepository
from casenotes.infrastructure.db.session import session_scope


class BatchService:
    def __init__(
        self,
        repo: BatchRepository | None = None,
        case_note_repo: CaseNoteRepository | None = None,
        event_repo: RequestEventRepository | None = None,
        writer: CaseNoteWriter | None = None,
        case_note_service: CaseNoteService | None = None,
        sequence_service: SequenceService | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or BatchRepository()
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.event_repo = event_repo or RequestEventRepository()
        self.writer = writer or CaseNoteWriter(
            case_note_repo=self.case_note_repo, event_repo=self.event_repo, batch_repo=self.repo
        )
        self.session_factory = session_factory
        self.clock = clock
        self.sequence_service = sequence_service or SequenceService(session_factory=session_factory, clock=clock)
        self.case_note_service = case_note_service or CaseNoteService(
            repo=self.case_note_repo,
            event_repo=self.event_repo,
            writer=self.writer,
            sequence_service=self.sequence_service,
            session_factory=session_factory,
            clock=clock,
        )
        self._logger = logging.getLogger(__name__)

    def create(self, request: BatchCreateRequest) -> Ok[BatchResponse]:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, request.requested_by_user_id)
            batch_number = self.sequence_service.allocate_number(session, SequenceScope.BATCH, now)
            batch = self.repo.create(
                session,
                batch_number=batch_number,
                requested_by_user_id=actor.id,
                notes=request.notes,
                now=now,
            )
            batch_id = cast(int, batch.id)
            events: list[RequestEventResponse] = []
            for item in request.items:
                item_request = CaseNoteCreateRequest(
                    requested_by_user_id=actor.id,
                    **item.model_dump(),
                )
                _, event = self.case_note_service.create_in_session(
                    session,
                    item_request,
                    actor=actor,
                    now=now,
                    batch_id=batch_id,
                    batch_number=batch_number,
                )
                events.append(self.writer.event_response(event))
            self._logger.info(
                "Batch %s created with %s case notes by user %s", batch_number, len(request.items), actor.id
            )
            return Ok(self._response(session, batch, today=now.date()), events=tuple(events))

    def process(self, batch_id: int, request: BatchProcessRequest, actor_id: int) -> TransitionResult:
        """Approve or reject every pending child, then stamp the batch with the requested status."""
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            batch = self._load(session, batch_id)
            if not can_be_processed(self.repo.to_state(batch)):
                rejected = Rejected("not_pending", f"Batch {batch.batch_number} is already {batch.status}")
                return self.writer.log_rejected("batch process", str(batch.batch_number), rejected)
            events: list[RequestEventResponse] = []
            for row in self.case_note_repo.list_by_batch(session, batch_id):
                if row.status != RequestStatus.PENDING:
                    continue
                state = self.case_note_repo.to_state(row)
                if request.status == BatchStatus.APPROVED:
                    planned = plan_approve(state, actor, now=now, remarks=request.notes)
                else:
                    planned = plan_reject(state, actor, now=now, reason=cast(str, request.rejection_reason))
                if isinstance(planned, Rejected):
                    return self.writer.log_rejected("batch process", str(row.request_number), planned)
                _, event = self.writer.commit(session, row, planned.with_metadata(batch_id=batch_id), now=now)
                events.append(self.writer.event_response(event))
            batch = self._mark_as_processed(
                session, batch_id, status=request.status, actor=actor, notes=request.notes, now=now
            )
            return Ok(self._response(session, batch, today=now.date()), events=tuple(events))

    def mark_as_processed(self, batch_id: int, status: str, actor_id: int, notes: str | None = None) -> BatchResponse:
        """Administrative override of the batch status; children are left as they are."""
        if status not in BatchStatus.values():
            raise ValueError(f"Unknown batch status: {status}")
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            batch = self._mark_as_processed(session, batch_id, status=status, actor=actor, notes=notes, now=now)
            return self._response(session, batch, today=now.date())

    def update_status(self, batch_id: int) -> str:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            self._load(session, batch_id)
            return self.writer.refresh_batch_status(session, batch_id, now=now)

    def verify_receipt(self, batch_id: int, request: BatchVerifyRequest, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            batch = self._load(session, batch_id)
            rejected = self._check_requester(batch, actor)
            approved_count = self.repo.approved_count(session, batch)
            rejected = rejected or check_received_count(
                self.repo.to_state(batch),
                approved_count=approved_count,
                received_count=request.received_count,
            )
            if rejected is not None:
                return self.writer.log_rejected("batch verify", str(batch.batch_number), rejected)
            batch = self.repo.update_where(
                session,
                batch_id,
                expected={"status": BatchStatus.APPROVED.value, "is_verified": False},
                values={
                    "is_verified": True,
                    "approved_count": approved_count,
                    "received_count": request.received_count,
                    "verified_at": now,
                    "verified_by_user_id": actor.id,
                    "verification_notes": request.verification_notes,
                },
                now=now,
            )
            events: list[RequestEventResponse] = []
            for row in self.case_note_repo.list_by_batch(session, batch_id):
                if row.status != RequestStatus.APPROVED:
                    continue
                event = self.event_repo.append(
                    session,
                    request_id=cast(int, row.id),
                    draft=EventDraft(
                        type=EventType.VERIFIED_RECEIVED.value,
                        actor_user_id=actor.id,
                        occurred_at=now,
                        metadata={
                            "request_number": row.request_number,
                            "actor_name": actor.name,
                            "batch_id": batch_id,
                            "batch_number": batch.batch_number,
                            "approved_count": approved_count,
                            "received_count": request.received_count,
                            "counts_match": request.received_count == approved_count,
                            "verification_notes": request.verification_notes,
                        },
                    ),
                )
                events.append(self.writer.event_response(event))
            self._logger.info(
                "Batch %s receipt verified: %s of %s received (user %s)",
                batch.batch_number,
                request.received_count,
                approved_count,
                actor.id,
            )
            return Ok(self._response(session, batch, today=now.date()), events=tuple(events))

    def verify_individual(
        self, batch_id: int, request: BatchIndividualVerifyRequest, actor_id: int
    ) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            batch = self._load(session, batch_id)
            rejected = self._check_requester(batch, actor)
            if rejected is None and batch.status != BatchStatus.APPROVED:
                rejected = Rejected("not_approved", f"Batch {batch.batch_number} must be approved first")
            approved = {
                cast(int, row.id): row
                for row in self.case_note_repo.list_by_batch(session, batch_id)
                if row.status == RequestStatus.APPROVED
            }
            invalid = sorted(set(request.case_note_ids) - approved.keys())
            if rejected is None and invalid:
                rejected = Rejected(
                    "invalid_case_notes", f"Case notes {invalid} are not approved members of this batch"
                )
            if rejected is not None:
                return self.writer.log_rejected("batch individual verify", str(batch.batch_number), rejected)

            events: list[RequestEventResponse] = []
            for note_id in dict.fromkeys(request.case_note_ids):
                row = approved[note_id]
                if bool(row.is_received):
                    continue
                planned = plan_mark_received(
                    self.case_note_repo.to_state(row), actor, now=now, notes=request.verification_notes
                )
                if isinstance(planned, Rejected):
                    return self.writer.log_rejected("batch individual verify", str(row.request_number), planned)
                _, event = self.writer.commit(session, row, planned.with_metadata(batch_id=batch_id), now=now)
                events.append(self.writer.event_response(event))

            total_approved = len(approved)
            total_received = self.repo.received_approved_count(session, batch_id)
            batch = self.repo.update_where(
                session,
                batch_id,
                expected={"status": BatchStatus.APPROVED.value},
                values={
                    "approved_count": total_approved,
                    "received_count": total_received,
                    "is_verified": total_received == total_approved,
                    "verified_at": now,
                    "verified_by_user_id": actor.id,
                    "verification_notes": request.verification_notes,
                },
                now=now,
            )
            self._logger.info(
                "Batch %s individually verified: %s of %s received (user %s)",
                batch.batch_number,
                total_received,
                total_approved,
                actor.id,
            )
            return Ok(self._response(session, batch, today=now.date()), events=tuple(events))

    def get(self, batch_id: int) -> BatchResponse:
        today = normalize_datetime(self.clock()).date()
        with self.session_factory() as session:
            return self._response(session, self._load(session, batch_id), today=today)

    def list(self, requested_by_user_id: int | None = None, status: str | None = None) -> list[BatchResponse]:
        today = normalize_datetime(self.clock()).date()
        with self.session_factory() as session:
            batches = self.repo.list_batches(session, requested_by_user_id=requested_by_user_id, status=status)
            return [self._response(session, batch, today=today) for batch in batches]

    def _mark_as_processed(
        self, session: Session, batch_id: int, *, status: str, actor: ActorRef, notes: str | None, now: datetime
    ) -> BatchRequest:
        batch = self._load(session, batch_id)
        current = str(batch.status)
        batch = self.repo.update_where(
            session,
            batch_id,
            expected={"status": current},
            values={
                "status": status,
                "processed_at": now,
                "processed_by_user_id": actor.id,
                "processing_notes": notes,
                "approved_count": self.repo.live_approved_count(session, batch_id),
            },
            now=now,
        )
        self._logger.info("Batch %s processed: %s -> %s (user %s)", batch.batch_number, current, status, actor.id)
        return batch

    def _check_requester(self, batch: BatchRequest, actor: ActorRef) -> Rejected | None:
        if batch.requested_by_user_id != actor.id:
            return Rejected("not_requester", f"Only the requester may verify batch {batch.batch_number}")
        return None

    def _load(self, session: Session, batch_id: int) -> BatchRequest:
        batch = self.repo.get(session, batch_id)
        if batch is None:
            raise EntityNotFoundError("batch request", batch_id)
        return batch

    def _response(self, session: Session, batch: BatchRequest, *, today: date) -> BatchResponse:
        children = self.case_note_repo.list_by_batch(session, cast(int, batch.id))
        return BatchResponse.model_validate(batch).model_copy(
            update={"case_notes": [to_case_note_response(row, today=today) for row in children]}
        )
