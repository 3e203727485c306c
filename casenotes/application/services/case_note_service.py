from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from sqlalchemy.orm import Session

from casenotes.application.dto.case_note_dto import (
    CaseNoteCreateRequest,
    CaseNoteFilters,
    CaseNoteResponse,
    CaseNoteStats,
    ReceiptVerificationSummary,
    RejectionRequest,
)
from casenotes.application.services.case_note_writer import CaseNoteWriter, to_case_note_response
from casenotes.application.services.sequence_service import SequenceService
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.domain.constants import EventType, RequestStatus, SequenceScope, UserRole
from casenotes.domain.errors import EntityNotFoundError
from casenotes.domain.models.case_note import ActorRef
from casenotes.domain.models.transition import EventDraft, Ok, Rejected, Transition, TransitionResult
from casenotes.domain.rules import case_note_rules
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteRequest, RequestEvent
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.event_repo import RequestEventRepository
from casenotes.infrastructure.db.repositories.reference_repo import ReferenceRepository
from casenotes.infrastructure.db.repositories.user_repo import UserRepository
from casenotes.infrastructure.db.session import session_scope

Planner = Callable[..., Transition | Rejected]


class CaseNoteService:
    def __init__(
        self,
        repo: CaseNoteRepository | None = None,
        event_repo: RequestEventRepository | None = None,
        user_repo: UserRepository | None = None,
        ref_repo: ReferenceRepository | None = None,
        writer: CaseNoteWriter | None = None,
        sequence_service: SequenceService | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or CaseNoteRepository()
        self.event_repo = event_repo or RequestEventRepository()
        self.user_repo = user_repo or UserRepository()
        self.ref_repo = ref_repo or ReferenceRepository()
        self.writer = writer or CaseNoteWriter(
            case_note_repo=self.repo, event_repo=self.event_repo, user_repo=self.user_repo
        )
        self.session_factory = session_factory
        self.clock = clock
        self.sequence_service = sequence_service or SequenceService(session_factory=session_factory, clock=clock)
        self._logger = logging.getLogger(__name__)

    def create(self, request: CaseNoteCreateRequest) -> Ok[CaseNoteResponse]:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, request.requested_by_user_id)
            row, event = self.create_in_session(session, request, actor=actor, now=now)
            return Ok(
                to_case_note_response(row, today=now.date()),
                events=(self.writer.event_response(event),),
            )

    def create_in_session(
        self,
        session: Session,
        request: CaseNoteCreateRequest,
        *,
        actor: ActorRef,
        now: datetime,
        batch_id: int | None = None,
        batch_number: str | None = None,
    ) -> tuple[CaseNoteRequest, RequestEvent]:
        patient = self.ref_repo.get_patient(session, request.patient_id)
        if patient is None:
            raise EntityNotFoundError("patient", request.patient_id)
        doctor_name = None
        if request.doctor_id is not None:
            doctor = self.ref_repo.get_doctor(session, request.doctor_id)
            if doctor is None:
                raise EntityNotFoundError("doctor", request.doctor_id)
            doctor_name = str(doctor.name)
        if request.department_id is not None and self.ref_repo.get_department(session, request.department_id) is None:
            raise EntityNotFoundError("department", request.department_id)
        if request.location_id is not None and self.ref_repo.get_location(session, request.location_id) is None:
            raise EntityNotFoundError("location", request.location_id)

        request_number = self.sequence_service.allocate_number(session, SequenceScope.REQUEST, now)
        row = self.repo.create(
            session,
            request_number=request_number,
            patient_id=request.patient_id,
            requested_by_user_id=actor.id,
            department_id=request.department_id,
            doctor_id=request.doctor_id,
            location_id=request.location_id,
            priority=request.priority,
            purpose=request.purpose,
            needed_date=request.needed_date,
            remarks=request.remarks,
            created_at=now,
            batch_id=batch_id,
        )
        metadata: dict[str, object] = {
            "request_number": request_number,
            "new_status": RequestStatus.PENDING.value,
            "actor_name": actor.name,
            "patient_name": str(patient.name),
            "purpose": request.purpose,
            "priority": request.priority,
            "doctor_id": request.doctor_id,
            "doctor_name": doctor_name,
        }
        if batch_id is not None:
            metadata.update({"batch_id": batch_id, "batch_number": batch_number})
        event = self.event_repo.append(
            session,
            request_id=cast(int, row.id),
            draft=EventDraft(
                type=EventType.CREATED.value,
                actor_user_id=actor.id,
                occurred_at=now,
                metadata={k: v for k, v in metadata.items() if v is not None},
            ),
        )
        self._logger.info("Case note %s created for patient %s by user %s", request_number, patient.mrn, actor.id)
        return row, event

    def approve(
        self, note_id: int, actor_id: int, remarks: str | None = None, *, occurred_at: datetime | None = None
    ) -> TransitionResult:
        return self._transition(
            note_id, actor_id, "approve", case_note_rules.plan_approve, occurred_at=occurred_at, remarks=remarks
        )

    def reject(
        self, note_id: int, request: RejectionRequest, actor_id: int, *, occurred_at: datetime | None = None
    ) -> TransitionResult:
        return self._transition(
            note_id, actor_id, "reject", case_note_rules.plan_reject, occurred_at=occurred_at, reason=request.reason
        )

    def start_progress(self, note_id: int, actor_id: int, *, occurred_at: datetime | None = None) -> TransitionResult:
        return self._transition(
            note_id, actor_id, "start_progress", case_note_rules.plan_start_progress, occurred_at=occurred_at
        )

    def complete(self, note_id: int, actor_id: int, *, occurred_at: datetime | None = None) -> TransitionResult:
        return self._transition(note_id, actor_id, "complete", case_note_rules.plan_complete, occurred_at=occurred_at)

    def mark_received(
        self, note_id: int, actor_id: int, notes: str | None = None, *, occurred_at: datetime | None = None
    ) -> TransitionResult:
        return self._transition(
            note_id, actor_id, "mark_received", case_note_rules.plan_mark_received, occurred_at=occurred_at, notes=notes
        )

    def verify_received(self, note_ids: list[int], actor_id: int, notes: str | None = None) -> TransitionResult:
        """Requester confirms pickup of several approved notes; already received ones are counted, not failed."""
        return self._verify_receipt(note_ids, actor_id, owner_id=actor_id, notes=notes)

    def verify_on_behalf(
        self,
        note_ids: list[int],
        on_behalf_of_user_id: int,
        actor_id: int,
        notes: str | None = None,
    ) -> TransitionResult:
        """A clinic assistant confirms pickup for a colleague who requested the notes."""
        return self._verify_receipt(note_ids, actor_id, owner_id=on_behalf_of_user_id, notes=notes)

    def _verify_receipt(
        self, note_ids: list[int], actor_id: int, *, owner_id: int, notes: str | None
    ) -> TransitionResult:
        now = normalize_datetime(self.clock())
        action = "verify_received" if owner_id == actor_id else "verify_on_behalf"
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            owner = actor if owner_id == actor.id else self.writer.load_actor(session, owner_id)
            if owner.id != actor.id:
                for user_id in (actor.id, owner.id):
                    user = self.user_repo.get_by_id(session, user_id)
                    if user is None or user.role != UserRole.CA:
                        rejected = Rejected("not_ca", f"User {user_id} is not a clinic assistant")
                        return self.writer.log_rejected(action, f"user {actor.id}", rejected)
            rows = self.repo.list_by_ids(session, note_ids)
            found = {cast(int, row.id) for row in rows}
            missing = [note_id for note_id in note_ids if note_id not in found]
            if missing:
                raise EntityNotFoundError("case note", missing[0])

            # every note is checked before the first write
            planned: list[tuple[CaseNoteRequest, Transition]] = []
            already = 0
            for row in rows:
                if row.requested_by_user_id != owner.id:
                    rejected = Rejected(
                        "not_requester", f"Case note {row.request_number} was not requested by user {owner.id}"
                    )
                    return self.writer.log_rejected(action, str(row.request_number), rejected)
                if bool(row.is_received):
                    already += 1
                    continue
                plan = case_note_rules.plan_mark_received(self.repo.to_state(row), actor, now=now, notes=notes)
                if isinstance(plan, Rejected):
                    return self.writer.log_rejected(action, str(row.request_number), plan)
                if owner.id != actor.id:
                    plan = plan.with_metadata(on_behalf_of_user_id=owner.id, on_behalf_of_name=owner.name)
                planned.append((row, plan))

            events = []
            for row, plan in planned:
                _, event = self.writer.commit(session, row, plan, now=now)
                events.append(self.writer.event_response(event))
            if owner.id != actor.id:
                self._logger.info(
                    "User %s verified %s case notes on behalf of user %s (%s already verified)",
                    actor.id,
                    len(planned),
                    owner.id,
                    already,
                )
            summary = ReceiptVerificationSummary(
                verified_count=len(planned),
                already_verified_count=already,
                on_behalf_of_user_id=owner.id if owner.id != actor.id else None,
            )
            return Ok(summary, events=tuple(events))

    def get(self, note_id: int) -> CaseNoteResponse:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            return to_case_note_response(self.writer.load_note(session, note_id), today=now.date())

    def get_by_number(self, request_number: str) -> CaseNoteResponse:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            row = self.repo.get_by_number(session, request_number)
            if row is None:
                raise EntityNotFoundError("case note", request_number)
            return to_case_note_response(row, today=now.date())

    def list(self, filters: CaseNoteFilters | None = None) -> list[CaseNoteResponse]:
        filters = filters or CaseNoteFilters()
        today = normalize_datetime(self.clock()).date()
        with self.session_factory() as session:
            rows = self.repo.list_filtered(
                session,
                today=today,
                status=filters.status,
                priority=filters.priority,
                department_id=filters.department_id,
                patient_id=filters.patient_id,
                requested_by_user_id=filters.requested_by_user_id,
                current_pic_user_id=filters.current_pic_user_id,
                overdue=filters.overdue,
                created_from=filters.created_from,
                created_to=filters.created_to,
                limit=filters.limit,
            )
            return [to_case_note_response(row, today=today) for row in rows]

    def stats(self) -> CaseNoteStats:
        today = normalize_datetime(self.clock()).date()
        with self.session_factory() as session:
            counts = self.repo.count_by_status(session)
            by_status = {status: counts.get(status, 0) for status in RequestStatus.values()}
            return CaseNoteStats(
                total=sum(by_status.values()),
                by_status=by_status,
                overdue=self.repo.count_overdue(session, today=today),
            )

    def consistency_violations(self, note_id: int) -> list[str]:
        with self.session_factory() as session:
            return case_note_rules.consistency_violations(self.repo.to_state(self.writer.load_note(session, note_id)))

    def soft_delete(self, note_id: int, actor_id: int) -> None:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            row = self.writer.load_note(session, note_id)
            self.repo.soft_delete(session, note_id, expected_version=cast(int, row.version), now=now)
            self._logger.info("Case note %s soft-deleted by user %s", row.request_number, actor.id)

    def _transition(
        self,
        note_id: int,
        actor_id: int,
        action: str,
        planner: Planner,
        *,
        occurred_at: datetime | None = None,
        **kwargs,
    ) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            row = self.writer.load_note(session, note_id)
            moment = self._event_time(session, row, now, occurred_at)
            if isinstance(moment, Rejected):
                return self.writer.log_rejected(action, str(row.request_number), moment)
            planned = planner(self.repo.to_state(row), actor, now=moment, **kwargs)
            if isinstance(planned, Rejected):
                return self.writer.log_rejected(action, str(row.request_number), planned)
            updated, event = self.writer.commit(session, row, planned, now=now)
            return Ok(to_case_note_response(updated, today=now.date()), events=(self.writer.event_response(event),))

    def _event_time(
        self, session: Session, row: CaseNoteRequest, now: datetime, occurred_at: datetime | None
    ) -> datetime | Rejected:
        """Backdated events must land between the note's last event and now so replay stays ordered."""
        if occurred_at is None:
            return now
        moment = normalize_datetime(occurred_at)
        if moment > now:
            return Rejected("invalid_occurred_at", f"{moment.isoformat()} is in the future")
        latest = self.event_repo.latest_occurred_at(session, cast(int, row.id))
        if latest is not None and moment < latest:
            return Rejected(
                "invalid_occurred_at",
                f"{moment.isoformat()} precedes the last event of case note {row.request_number}",
            )
        return moment
