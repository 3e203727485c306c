from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from casenotes.infrastructure.db.models_sqlalchemy import RequestSequence, utc_now


class SequenceRepository:
    def next_value(self, session: Session, *, scope: str, date_key: str) -> int:
        """Increment and return the counter for ``(scope, date_key)``.

        The UPDATE takes the row's write lock, which is held until the caller's
        transaction ends; concurrent callers for the same key queue behind it.
        """
        self._ensure_row(session, scope=scope, date_key=date_key)
        session.execute(
            update(RequestSequence)
            .where(RequestSequence.scope == scope, RequestSequence.date_key == date_key)
            .values(current_sequence=RequestSequence.current_sequence + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        stmt = select(RequestSequence.current_sequence).where(
            RequestSequence.scope == scope,
            RequestSequence.date_key == date_key,
        )
        return int(session.execute(stmt).scalar_one())

    def current_value(self, session: Session, *, scope: str, date_key: str) -> int:
        stmt = select(RequestSequence.current_sequence).where(
            RequestSequence.scope == scope,
            RequestSequence.date_key == date_key,
        )
        value = session.execute(stmt).scalar_one_or_none()
        return int(value) if value is not None else 0

    def _ensure_row(self, session: Session, *, scope: str, date_key: str) -> None:
        values = {"scope": scope, "date_key": date_key, "current_sequence": 0, "updated_at": utc_now()}
        dialect = session.get_bind().dialect.name
        stmt: Any
        if dialect == "sqlite":
            stmt = sqlite_insert(RequestSequence).values(**values)
            session.execute(stmt.on_conflict_do_nothing(index_elements=["scope", "date_key"]))
            return
        if dialect == "postgresql":
            stmt = pg_insert(RequestSequence).values(**values)
            session.execute(stmt.on_conflict_do_nothing(index_elements=["scope", "date_key"]))
            return
        stmt = (
            select(RequestSequence.id)
            .where(RequestSequence.scope == scope, RequestSequence.date_key == date_key)
            .with_for_update()
        )
        if session.execute(stmt).scalar_one_or_none() is None:
            session.add(RequestSequence(**values))
            session.flush()
