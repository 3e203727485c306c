from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from casenotes.domain.clock import normalize_datetime
from casenotes.domain.models.transition import EventDraft
from casenotes.infrastructure.db.models_sqlalchemy import RequestEvent


class RequestEventRepository:
    def append(
        self,
        session: Session,
        *,
        request_id: int,
        draft: EventDraft,
        to_location_id: int | None = None,
        to_person: str | None = None,
    ) -> RequestEvent:
        event = RequestEvent(
            request_id=request_id,
            type=draft.type,
            actor_user_id=draft.actor_user_id,
            to_location_id=to_location_id,
            to_person=to_person,
            reason=draft.reason,
            occurred_at=normalize_datetime(draft.occurred_at),
            metadata_json=json.dumps(draft.metadata, ensure_ascii=False, default=str) if draft.metadata else None,
        )
        session.add(event)
        session.flush()
        return event

    def list_for_request(self, session: Session, request_id: int) -> list[RequestEvent]:
        stmt = (
            select(RequestEvent)
            .where(RequestEvent.request_id == request_id)
            .order_by(RequestEvent.occurred_at.asc(), RequestEvent.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def list_in_range(
        self,
        session: Session,
        *,
        types: Iterable[str],
        start: datetime,
        end: datetime,
    ) -> list[RequestEvent]:
        stmt = (
            select(RequestEvent)
            .where(
                RequestEvent.type.in_(list(types)),
                RequestEvent.occurred_at >= normalize_datetime(start),
                RequestEvent.occurred_at <= normalize_datetime(end),
            )
            .order_by(RequestEvent.occurred_at.asc(), RequestEvent.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def load_metadata(self, event: RequestEvent) -> dict[str, Any]:
        raw = event.metadata_json
        if not raw:
            return {}
        try:
            value = json.loads(str(raw))
        except (TypeError, ValueError):
            return {}
        return value if isinstance(value, dict) else {}

    def latest_occurred_at(self, session: Session, request_id: int) -> datetime | None:
        stmt = select(func.max(RequestEvent.occurred_at)).where(RequestEvent.request_id == request_id)
        return session.execute(stmt).scalar_one_or_none()
