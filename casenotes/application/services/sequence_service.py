from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from casenotes.domain.clock import Clock, date_key, utc_now
from casenotes.domain.constants import (
    BATCH_NUMBER_PREFIX,
    FILING_NUMBER_PREFIX,
    REQUEST_NUMBER_PREFIX,
    SEND_OUT_NUMBER_PREFIX,
    SequenceScope,
)
from casenotes.infrastructure.db.repositories.sequence_repo import SequenceRepository
from casenotes.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


def format_request_number(key: str, seq: int) -> str:
    return f"{REQUEST_NUMBER_PREFIX}{key}{seq:04d}"


def format_batch_number(key: str, seq: int) -> str:
    return f"{BATCH_NUMBER_PREFIX}{key}-{seq:03d}"


def format_filing_number(key: str, seq: int) -> str:
    return f"{FILING_NUMBER_PREFIX}-{key}-{seq:03d}"


def format_send_out_number(key: str, seq: int) -> str:
    return f"{SEND_OUT_NUMBER_PREFIX}{key}{seq:04d}"


_FORMATTERS: dict[str, Callable[[str, int], str]] = {
    SequenceScope.REQUEST: format_request_number,
    SequenceScope.BATCH: format_batch_number,
    SequenceScope.FILING: format_filing_number,
    SequenceScope.SEND_OUT: format_send_out_number,
}


def _check_key(key: str) -> None:
    if len(key) != 8 or not key.isdigit():
        raise ValueError(f"date key must be YYYYMMDD, got {key!r}")


class SequenceService:
    def __init__(
        self,
        repo: SequenceRepository | None = None,
        session_factory: Callable = session_scope,
        clock: Clock = utc_now,
    ) -> None:
        self.repo = repo or SequenceRepository()
        self.session_factory = session_factory
        self.clock = clock

    def next_sequence(self, key: str, scope: str = SequenceScope.REQUEST) -> int:
        """Allocate in a transaction of its own; committed on return."""
        _check_key(key)
        with self.session_factory() as session:
            return self._allocate(session, scope=scope, key=key)

    def current_sequence(self, key: str, scope: str = SequenceScope.REQUEST) -> int:
        _check_key(key)
        with self.session_factory() as session:
            return self.repo.current_value(session, scope=scope, date_key=key)

    def generate_request_number(self) -> str:
        with self.session_factory() as session:
            return self.allocate_number(session, SequenceScope.REQUEST, self.clock())

    def allocate_number(self, session: Session, scope: str, moment: datetime) -> str:
        """Mint a number inside the caller's transaction so it rolls back with it."""
        key = date_key(moment)
        seq = self._allocate(session, scope=scope, key=key)
        return _FORMATTERS[scope](key, seq)

    def _allocate(self, session: Session, *, scope: str, key: str) -> int:
        _check_key(key)
        seq = self.repo.next_value(session, scope=str(scope), date_key=key)
        logger.debug("Allocated %s sequence %s for %s", scope, seq, key)
        return seq
