from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, time
from typing import cast

from casenotes.application.dto.timeline_dto import TimelineItem, TrackingReportRequest, TrackingReportRow
from casenotes.domain.constants import EVENT_TYPE_LABELS, EventType, RequestStatus
from casenotes.domain.errors import EntityNotFoundError
from casenotes.domain.models.transition import Ok, Rejected
from casenotes.domain.rules.case_note_rules import replay_status_history
from casenotes.infrastructure.db.models_sqlalchemy import RequestEvent
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.event_repo import RequestEventRepository
from casenotes.infrastructure.db.repositories.reference_repo import ReferenceRepository
from casenotes.infrastructure.db.repositories.user_repo import UserRepository
from casenotes.infrastructure.db.session import session_scope

_OUT_STATUSES = (RequestStatus.APPROVED.value, RequestStatus.IN_PROGRESS.value, RequestStatus.COMPLETED.value)


def describe_event(
    event_type: str,
    *,
    actor_name: str | None = None,
    location_name: str | None = None,
    to_person: str | None = None,
) -> str:
    description = EVENT_TYPE_LABELS.get(event_type, event_type.replace("_", " ").title())
    if actor_name:
        description += f" by {actor_name}"
    if location_name:
        description += f" to {location_name}"
    if to_person:
        description += f" ({to_person})"
    return description


class TimelineService:
    def __init__(
        self,
        event_repo: RequestEventRepository | None = None,
        case_note_repo: CaseNoteRepository | None = None,
        user_repo: UserRepository | None = None,
        ref_repo: ReferenceRepository | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.event_repo = event_repo or RequestEventRepository()
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.user_repo = user_repo or UserRepository()
        self.ref_repo = ref_repo or ReferenceRepository()
        self.session_factory = session_factory

    def timeline(self, note_id: int) -> list[TimelineItem]:
        with self.session_factory() as session:
            if self.case_note_repo.get(session, note_id) is None:
                raise EntityNotFoundError("case note", note_id)
            events = self.event_repo.list_for_request(session, note_id)
            users = self.user_repo.get_many(
                session, {cast(int, e.actor_user_id) for e in events if e.actor_user_id is not None}
            )
            items: list[TimelineItem] = []
            for event in events:
                metadata = self.event_repo.load_metadata(event)
                user = users.get(cast(int, event.actor_user_id)) if event.actor_user_id is not None else None
                # Names stored at write time survive user deletion.
                actor_name = str(user.name) if user is not None else metadata.get("actor_name")
                location = (
                    self.ref_repo.get_location(session, cast(int, event.to_location_id))
                    if event.to_location_id is not None
                    else None
                )
                event_type = str(event.type)
                items.append(
                    TimelineItem(
                        id=cast(int, event.id),
                        type=event_type,
                        type_label=EVENT_TYPE_LABELS.get(event_type, event_type),
                        description=describe_event(
                            event_type,
                            actor_name=actor_name,
                            location_name=str(location.name) if location is not None else None,
                            to_person=cast(str | None, event.to_person),
                        ),
                        actor_user_id=cast(int | None, event.actor_user_id),
                        actor_name=actor_name,
                        to_person=cast(str | None, event.to_person),
                        reason=cast(str | None, event.reason),
                        occurred_at=cast(datetime, event.occurred_at),
                        metadata=metadata,
                    )
                )
            return items

    def replay(self, note_id: int) -> Ok[list[str]] | Rejected:
        with self.session_factory() as session:
            if self.case_note_repo.get(session, note_id, include_deleted=True) is None:
                raise EntityNotFoundError("case note", note_id)
            return replay_status_history(self.event_repo.list_for_request(session, note_id))

    def tracking_report(self, request: TrackingReportRequest) -> list[TrackingReportRow]:
        """Case notes sent out (approved) or brought back (returned) within the date range."""
        start = datetime.combine(request.start_date, time.min)
        end = datetime.combine(request.end_date, time.max)
        event_type = EventType.APPROVED if request.direction == "out" else EventType.RETURNED
        with self.session_factory() as session:
            events: list[RequestEvent] = self.event_repo.list_in_range(
                session, types=[event_type.value], start=start, end=end
            )
            notes = {
                cast(int, row.id): row
                for row in self.case_note_repo.list_by_ids(session, {cast(int, e.request_id) for e in events})
            }
            departments = self.ref_repo.get_departments(
                session, {cast(int, n.department_id) for n in notes.values() if n.department_id is not None}
            )
            users = self.user_repo.get_many(
                session, {cast(int, e.actor_user_id) for e in events if e.actor_user_id is not None}
            )
            rows: list[TrackingReportRow] = []
            for event in events:
                note = notes.get(cast(int, event.request_id))
                if note is None:
                    continue
                if request.direction == "out" and note.status not in _OUT_STATUSES:
                    continue
                user = users.get(cast(int, event.actor_user_id)) if event.actor_user_id is not None else None
                actor_name = str(user.name) if user is not None else None
                if actor_name is None:
                    actor_name = self.event_repo.load_metadata(event).get("actor_name")
                department = departments.get(cast(int, note.department_id)) if note.department_id is not None else None
                rows.append(
                    TrackingReportRow(
                        request_id=cast(int, note.id),
                        request_number=str(note.request_number),
                        patient_name=str(note.patient.name),
                        patient_mrn=str(note.patient.mrn),
                        department_name=str(department.name) if department is not None else None,
                        status=str(note.status),
                        actor_name=actor_name,
                        activity_at=cast(datetime, event.occurred_at),
                        direction=request.direction,
                    )
                )
            return rows
