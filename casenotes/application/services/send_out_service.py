from __future__ import annotations

import logging
from collections.abc import Callable
from typing import cast

from sqlalchemy.orm import Session

from casenotes.application.dto.custody_dto import SendOutAcknowledgeRequest, SendOutCreateRequest, SendOutResponse
from casenotes.application.services.case_note_writer import CaseNoteWriter
from casenotes.application.services.sequence_service import SequenceService
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.domain.constants import SendOutStatus, SequenceScope, UserRole
from casenotes.domain.errors import EntityNotFoundError
from casenotes.domain.models.case_note import SendOutState
from casenotes.domain.models.transition import Ok, Rejected, Transition, TransitionResult
from casenotes.domain.rules.custody_rules import plan_acknowledge_send_out, plan_cancel_send_out, plan_send_out
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteRequest, SendOut
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.reference_repo import ReferenceRepository
from casenotes.infrastructure.db.repositories.send_out_repo import SendOutRepository
from casenotes.infrastructure.db.repositories.user_repo import UserRepository
from casenotes.infrastructure.db.session import session_scope


class SendOutService:
    """Holder dispatches several notes to another clinic assistant, who acknowledges them one by one.

    Custody moves per note on acknowledgement. Until then each note carries
    ``current_send_out_id`` and counts as a transfer in flight.
    """

    def __init__(
        self,
        repo: SendOutRepository | None = None,
        case_note_repo: CaseNoteRepository | None = None,
        user_repo: UserRepository | None = None,
        ref_repo: ReferenceRepository | None = None,
        writer: CaseNoteWriter | None = None,
        sequence_service: SequenceService | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or SendOutRepository()
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.user_repo = user_repo or UserRepository()
        self.ref_repo = ref_repo or ReferenceRepository()
        self.writer = writer or CaseNoteWriter(case_note_repo=self.case_note_repo, user_repo=self.user_repo)
        self.session_factory = session_factory
        self.clock = clock
        self.sequence_service = sequence_service or SequenceService(session_factory=session_factory, clock=clock)
        self._logger = logging.getLogger(__name__)

    def send_out(self, request: SendOutCreateRequest, actor_id: int) -> TransitionResult:
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            recipient = self.writer.load_actor(session, request.sent_to_user_id)
            department = self.ref_repo.get_department(session, request.department_id)
            if department is None:
                raise EntityNotFoundError("department", request.department_id)
            doctor = self.ref_repo.get_doctor(session, request.doctor_id)
            if doctor is None:
                raise EntityNotFoundError("doctor", request.doctor_id)
            recipient_user = self.user_repo.get_by_id(session, recipient.id)
            if recipient_user is None or recipient_user.role != UserRole.CA:
                rejected = Rejected("recipient_not_ca", f"User {recipient.id} is not a clinic assistant")
                return self.writer.log_rejected("send_out", f"user {actor.id}", rejected)

            rows = self._load_notes(session, request.case_note_ids)
            planned: list[tuple[CaseNoteRequest, Transition]] = []
            for row in rows:
                plan = plan_send_out(
                    self.case_note_repo.to_state(row),
                    actor,
                    to_user_id=recipient.id,
                    now=now,
                    notes=request.notes,
                )
                if isinstance(plan, Rejected):
                    return self.writer.log_rejected("send_out", str(row.request_number), plan)
                planned.append((row, plan))

            send_out_number = self.sequence_service.allocate_number(session, SequenceScope.SEND_OUT, now)
            send_out = self.repo.create(
                session,
                send_out_number=send_out_number,
                sent_by_user_id=actor.id,
                sent_to_user_id=recipient.id,
                department_id=request.department_id,
                doctor_id=request.doctor_id,
                case_note_ids=[cast(int, row.id) for row, _ in planned],
                notes=request.notes,
                now=now,
            )
            send_out_id = cast(int, send_out.id)
            events = []
            for row, plan in planned:
                plan = plan.with_values(current_send_out_id=send_out_id).with_metadata(
                    send_out_id=send_out_id,
                    send_out_number=send_out_number,
                    sent_to_name=recipient.name,
                    department_name=str(department.name),
                    doctor_name=str(doctor.name),
                )
                _, event = self.writer.commit(session, row, plan, now=now, to_person=recipient.name)
                events.append(self.writer.event_response(event))
            self._logger.info(
                "Send-out %s: %s case notes from user %s to user %s",
                send_out_number,
                len(planned),
                actor.id,
                recipient.id,
            )
            return Ok(self._response(send_out), events=tuple(events))

    def acknowledge(self, request: SendOutAcknowledgeRequest, actor_id: int) -> TransitionResult:
        """Recipient confirms arrival; every listed note must be outstanding on a pending send-out to them."""
        now = normalize_datetime(self.clock())
        wanted = list(dict.fromkeys(request.case_note_ids))
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            matches: list[tuple[SendOut, SendOutState, list[int]]] = []
            claimed: set[int] = set()
            for send_out in self.repo.list_pending_for_recipient(session, actor.id):
                state = self.repo.to_state(send_out)
                ids = [note_id for note_id in state.outstanding_ids if note_id in wanted and note_id not in claimed]
                if ids:
                    matches.append((send_out, state, ids))
                    claimed.update(ids)
            unmatched = [note_id for note_id in wanted if note_id not in claimed]
            if unmatched:
                rejected = Rejected(
                    "stale_send_out",
                    f"Case notes {unmatched} are not outstanding on a send-out to user {actor.id}",
                )
                return self.writer.log_rejected("send_out acknowledge", f"user {actor.id}", rejected)

            planned: list[tuple[CaseNoteRequest, Transition]] = []
            for _, state, ids in matches:
                sender = self.writer.load_actor(session, state.sent_by_user_id)
                for row in self._load_notes(session, ids):
                    plan = plan_acknowledge_send_out(
                        state,
                        self.case_note_repo.to_state(row),
                        actor,
                        now=now,
                        notes=request.notes,
                    )
                    if isinstance(plan, Rejected):
                        return self.writer.log_rejected("send_out acknowledge", str(row.request_number), plan)
                    planned.append((row, plan.with_metadata(sent_by_name=sender.name)))

            events = []
            for row, plan in planned:
                _, event = self.writer.commit(session, row, plan, now=now)
                events.append(self.writer.event_response(event))
            responses = []
            for send_out, state, ids in matches:
                updated = self.repo.record_acknowledgement(
                    session,
                    send_out,
                    acknowledged_ids=[*state.acknowledged_case_note_ids, *ids],
                    actor_id=actor.id,
                    notes=request.notes,
                    now=now,
                )
                self._logger.info(
                    "Send-out %s: %s case notes acknowledged by user %s (%s)",
                    state.send_out_number,
                    len(ids),
                    actor.id,
                    updated.status,
                )
                responses.append(self._response(updated))
            return Ok(responses, events=tuple(events))

    def cancel(self, send_out_id: int, actor_id: int, reason: str | None = None) -> TransitionResult:
        """Sender withdraws the notes nobody has acknowledged yet."""
        now = normalize_datetime(self.clock())
        with self.session_factory() as session:
            actor = self.writer.load_actor(session, actor_id)
            send_out = self._load(session, send_out_id)
            state = self.repo.to_state(send_out)
            if state.status != SendOutStatus.PENDING:
                rejected = Rejected(
                    "illegal_transition", f"Send-out {state.send_out_number} is already '{state.status}'"
                )
                return self.writer.log_rejected("send_out cancel", state.send_out_number, rejected)
            planned: list[tuple[CaseNoteRequest, Transition]] = []
            for row in self._load_notes(session, list(state.outstanding_ids)):
                plan = plan_cancel_send_out(state, self.case_note_repo.to_state(row), actor, now=now, reason=reason)
                if isinstance(plan, Rejected):
                    return self.writer.log_rejected("send_out cancel", state.send_out_number, plan)
                planned.append((row, plan))
            events = []
            for row, plan in planned:
                _, event = self.writer.commit(session, row, plan, now=now)
                events.append(self.writer.event_response(event))
            send_out = self.repo.cancel(session, send_out, now=now)
            self._logger.info(
                "Send-out %s cancelled by user %s; %s case notes released",
                state.send_out_number,
                actor.id,
                len(planned),
            )
            return Ok(self._response(send_out), events=tuple(events))

    def get(self, send_out_id: int) -> SendOutResponse:
        with self.session_factory() as session:
            return self._response(self._load(session, send_out_id))

    def list_incoming(self, user_id: int) -> list[SendOutResponse]:
        with self.session_factory() as session:
            return [self._response(row) for row in self.repo.list_pending_for_recipient(session, user_id)]

    def history(self, user_id: int, direction: str = "all") -> list[SendOutResponse]:
        with self.session_factory() as session:
            return [self._response(row) for row in self.repo.list_history(session, user_id, direction=direction)]

    def _load_notes(self, session: Session, note_ids: list[int]) -> list[CaseNoteRequest]:
        rows = self.case_note_repo.list_by_ids(session, note_ids)
        found = {cast(int, row.id) for row in rows}
        missing = [note_id for note_id in note_ids if note_id not in found]
        if missing:
            raise EntityNotFoundError("case note", missing[0])
        return rows

    def _load(self, session: Session, send_out_id: int) -> SendOut:
        send_out = self.repo.get(session, send_out_id)
        if send_out is None:
            raise EntityNotFoundError("send-out", send_out_id)
        return send_out

    def _response(self, send_out: SendOut) -> SendOutResponse:
        return SendOutResponse.model_validate(self.repo.to_dict(send_out))
