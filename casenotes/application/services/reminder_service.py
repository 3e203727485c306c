from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import cast

from casenotes.application.dto.timeline_dto import UnverifiedReminder
from casenotes.config import settings
from casenotes.domain.clock import Clock, normalize_datetime, utc_now
from casenotes.infrastructure.db.models_sqlalchemy import CaseNoteRequest
from casenotes.infrastructure.db.repositories.case_note_repo import CaseNoteRepository
from casenotes.infrastructure.db.repositories.user_repo import UserRepository
from casenotes.infrastructure.db.session import session_scope

Notifier = Callable[[UnverifiedReminder], None]


class ReminderService:
    """Finds approved case notes whose pickup was never confirmed."""

    def __init__(
        self,
        case_note_repo: CaseNoteRepository | None = None,
        user_repo: UserRepository | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
        after_hours: int | None = None,
    ) -> None:
        self.case_note_repo = case_note_repo or CaseNoteRepository()
        self.user_repo = user_repo or UserRepository()
        self.session_factory = session_factory
        self.clock = clock
        self.after_hours = settings.reminder_after_hours if after_hours is None else after_hours
        self._logger = logging.getLogger(__name__)

    def unverified_reminders(self) -> list[UnverifiedReminder]:
        cutoff = normalize_datetime(self.clock()) - timedelta(hours=self.after_hours)
        with self.session_factory() as session:
            rows = self.case_note_repo.list_unverified_receipts(session, approved_before=cutoff)
            grouped: dict[int, list[CaseNoteRequest]] = {}
            for row in rows:
                grouped.setdefault(cast(int, row.requested_by_user_id), []).append(row)
            users = self.user_repo.get_many(session, set(grouped))
            reminders: list[UnverifiedReminder] = []
            for user_id, notes in grouped.items():
                user = users.get(user_id)
                if user is None or not user.is_active:
                    continue
                reminders.append(
                    UnverifiedReminder(
                        user_id=user_id,
                        user_name=str(user.name),
                        email=str(user.email),
                        request_numbers=[str(n.request_number) for n in notes],
                        oldest_approved_at=min(cast(datetime, n.approved_at) for n in notes),
                    )
                )
            return reminders

    def send_reminders(self, notifier: Notifier | None = None) -> int:
        reminders = self.unverified_reminders()
        for reminder in reminders:
            self._logger.info(
                "Unverified receipt reminder for %s <%s>: %s",
                reminder.user_name,
                reminder.email,
                ", ".join(reminder.request_numbers),
            )
            if notifier is not None:
                notifier(reminder)
        self._logger.info("Sent %s unverified receipt reminders", len(reminders))
        return len(reminders)
