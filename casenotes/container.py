from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from casenotes.application.services.batch_service import BatchService
from casenotes.application.services.case_note_service import CaseNoteService
from casenotes.application.services.case_note_writer import CaseNoteWriter
from casenotes.application.services.filing_service import FilingService
from casenotes.application.services.handover_request_service import HandoverRequestService
from casenotes.application.services.handover_service import HandoverService
from casenotes.application.services.reminder_service import ReminderService
from casenotes.application.services.return_service import ReturnService
from casenotes.application.services.send_out_service import SendOutService
from casenotes.application.services.sequence_service import SequenceService
from casenotes.application.services.timeline_service import TimelineService
from casenotes.domain.clock import Clock, utc_now
from casenotes.infrastructure.db.repositories.batch_repo import BatchRepository
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.event_repo import RequestEventRepository
from casenotes.infrastructure.db.repositories.filing_repo import FilingRepository
from casenotes.infrastructure.db.repositories.handover_repo import HandoverRepository
from casenotes.infrastructure.db.repositories.handover_request_repo import HandoverRequestRepository
from casenotes.infrastructure.db.repositories.reference_repo import ReferenceRepository
from casenotes.infrastructure.db.repositories.send_out_repo import SendOutRepository
from casenotes.infrastructure.db.repositories.sequence_repo import SequenceRepository
from casenotes.infrastructure.db.repositories.user_repo import UserRepository
from casenotes.infrastructure.db.session import session_scope


@dataclass
class Container:
    user_repo: UserRepository
    ref_repo: ReferenceRepository
    case_note_repo: CaseNoteRepository
    event_repo: RequestEventRepository
    sequence_repo: SequenceRepository
    handover_repo: HandoverRepository
    handover_request_repo: HandoverRequestRepository
    batch_repo: BatchRepository
    filing_repo: FilingRepository
    send_out_repo: SendOutRepository

    sequence_service: SequenceService
    case_note_service: CaseNoteService
    return_service: ReturnService
    handover_service: HandoverService
    handover_request_service: HandoverRequestService
    send_out_service: SendOutService
    batch_service: BatchService
    filing_service: FilingService
    timeline_service: TimelineService
    reminder_service: ReminderService


def build_container(session_factory: Callable = session_scope, clock: Clock = utc_now) -> Container:
    user_repo = UserRepository()
    ref_repo = ReferenceRepository()
    case_note_repo = CaseNoteRepository()
    event_repo = RequestEventRepository()
    sequence_repo = SequenceRepository()
    handover_repo = HandoverRepository()
    handover_request_repo = HandoverRequestRepository()
    batch_repo = BatchRepository()
    filing_repo = FilingRepository()
    send_out_repo = SendOutRepository()

    writer = CaseNoteWriter(
        case_note_repo=case_note_repo,
        event_repo=event_repo,
        user_repo=user_repo,
        batch_repo=batch_repo,
    )
    sequence_service = SequenceService(repo=sequence_repo, session_factory=session_factory, clock=clock)
    case_note_service = CaseNoteService(
        repo=case_note_repo,
        event_repo=event_repo,
        user_repo=user_repo,
        ref_repo=ref_repo,
        writer=writer,
        sequence_service=sequence_service,
        session_factory=session_factory,
        clock=clock,
    )
    return_service = ReturnService(
        repo=case_note_repo,
        writer=writer,
        session_factory=session_factory,
        clock=clock,
    )
    handover_service = HandoverService(
        repo=handover_repo,
        case_note_repo=case_note_repo,
        writer=writer,
        session_factory=session_factory,
        clock=clock,
    )
    handover_request_service = HandoverRequestService(
        repo=handover_request_repo,
        case_note_repo=case_note_repo,
        writer=writer,
        session_factory=session_factory,
        clock=clock,
    )
    send_out_service = SendOutService(
        repo=send_out_repo,
        case_note_repo=case_note_repo,
        user_repo=user_repo,
        ref_repo=ref_repo,
        writer=writer,
        sequence_service=sequence_service,
        session_factory=session_factory,
        clock=clock,
    )
    batch_service = BatchService(
        repo=batch_repo,
        case_note_repo=case_note_repo,
        event_repo=event_repo,
        writer=writer,
        case_note_service=case_note_service,
        sequence_service=sequence_service,
        session_factory=session_factory,
        clock=clock,
    )
    filing_service = FilingService(
        repo=filing_repo,
        case_note_repo=case_note_repo,
        event_repo=event_repo,
        ref_repo=ref_repo,
        writer=writer,
        sequence_service=sequence_service,
        session_factory=session_factory,
        clock=clock,
    )
    timeline_service = TimelineService(
        event_repo=event_repo,
        case_note_repo=case_note_repo,
        user_repo=user_repo,
        ref_repo=ref_repo,
        session_factory=session_factory,
    )
    reminder_service = ReminderService(
        case_note_repo=case_note_repo,
        user_repo=user_repo,
        session_factory=session_factory,
        clock=clock,
    )

    return Container(
        user_repo=user_repo,
        ref_repo=ref_repo,
        case_note_repo=case_note_repo,
        event_repo=event_repo,
        sequence_repo=sequence_repo,
        handover_repo=handover_repo,
        handover_request_repo=handover_request_repo,
        batch_repo=batch_repo,
        filing_repo=filing_repo,
        send_out_repo=send_out_repo,
        sequence_service=sequence_service,
        case_note_service=case_note_service,
        return_service=return_service,
        handover_service=handover_service,
        handover_request_service=handover_request_service,
        send_out_service=send_out_service,
        batch_service=batch_service,
        filing_service=filing_service,
        timeline_service=timeline_service,
        reminder_service=reminder_service,
    )
