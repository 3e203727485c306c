from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from casenotes.domain.constants import SendOutStatus
from casenotes.domain.models.case_note import SendOutState
from casenotes.infrastructure.db.models_sqlalchemy import SendOut
from casenotes.infrastructure.db.repositories.conditional import conditional_update
from casenotes.infrastructure.db.repositories.filing_repo import decode_ids, encode_ids


class SendOutRepository:
    def get(self, session: Session, send_out_id: int) -> SendOut | None:
        return session.get(SendOut, send_out_id, populate_existing=True)

    def create(
        self,
        session: Session,
        *,
        send_out_number: str,
        sent_by_user_id: int,
        sent_to_user_id: int,
        department_id: int,
        doctor_id: int,
        case_note_ids: list[int],
        notes: str | None,
        now: datetime,
    ) -> SendOut:
        row = SendOut(
            send_out_number=send_out_number,
            sent_by_user_id=sent_by_user_id,
            sent_to_user_id=sent_to_user_id,
            department_id=department_id,
            doctor_id=doctor_id,
            case_note_ids_json=encode_ids(case_note_ids),
            case_note_count=len(case_note_ids),
            status=SendOutStatus.PENDING.value,
            notes=notes,
            sent_at=now,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()
        return row

    def record_acknowledgement(
        self,
        session: Session,
        row: SendOut,
        *,
        acknowledged_ids: list[int],
        actor_id: int,
        notes: str | None,
        now: datetime,
    ) -> SendOut:
        """Merge newly acknowledged ids; the send-out closes once every note is acknowledged."""
        send_out_id = cast(int, row.id)
        values: dict[str, Any] = {
            "acknowledged_case_note_ids_json": encode_ids(acknowledged_ids),
            "acknowledgment_notes": notes,
        }
        if set(acknowledged_ids) >= set(decode_ids(row.case_note_ids_json)):
            values.update(
                status=SendOutStatus.ACKNOWLEDGE.value,
                acknowledged_at=now,
                acknowledged_by_user_id=actor_id,
            )
        conditional_update(
            session,
            SendOut,
            send_out_id,
            expected={
                "status": SendOutStatus.PENDING.value,
                "acknowledged_case_note_ids_json": row.acknowledged_case_note_ids_json,
            },
            values={**values, "updated_at": now},
            entity="send-out",
        )
        return cast(SendOut, self.get(session, send_out_id))

    def cancel(self, session: Session, row: SendOut, *, now: datetime) -> SendOut:
        send_out_id = cast(int, row.id)
        conditional_update(
            session,
            SendOut,
            send_out_id,
            expected={
                "status": SendOutStatus.PENDING.value,
                "acknowledged_case_note_ids_json": row.acknowledged_case_note_ids_json,
            },
            values={"status": SendOutStatus.CANCELLED.value, "cancelled_at": now, "updated_at": now},
            entity="send-out",
        )
        return cast(SendOut, self.get(session, send_out_id))

    def list_pending_for_recipient(self, session: Session, user_id: int) -> list[SendOut]:
        stmt = (
            select(SendOut)
            .where(SendOut.sent_to_user_id == user_id, SendOut.status == SendOutStatus.PENDING.value)
            .order_by(SendOut.sent_at.asc(), SendOut.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def list_history(self, session: Session, user_id: int, *, direction: str = "all") -> list[SendOut]:
        stmt = select(SendOut)
        if direction == "sent":
            stmt = stmt.where(SendOut.sent_by_user_id == user_id)
        elif direction == "received":
            stmt = stmt.where(SendOut.sent_to_user_id == user_id)
        else:
            stmt = stmt.where(or_(SendOut.sent_by_user_id == user_id, SendOut.sent_to_user_id == user_id))
        stmt = stmt.order_by(SendOut.sent_at.desc(), SendOut.id.desc())
        return list(session.execute(stmt).scalars())

    def to_state(self, row: SendOut) -> SendOutState:
        return SendOutState(
            id=cast(int, row.id),
            send_out_number=cast(str, row.send_out_number),
            status=cast(str, row.status),
            sent_by_user_id=cast(int, row.sent_by_user_id),
            sent_to_user_id=cast(int, row.sent_to_user_id),
            case_note_ids=tuple(decode_ids(row.case_note_ids_json)),
            acknowledged_case_note_ids=tuple(decode_ids(row.acknowledged_case_note_ids_json)),
        )

    def to_dict(self, row: SendOut) -> dict[str, Any]:
        return {
            "id": row.id,
            "send_out_number": row.send_out_number,
            "sent_by_user_id": row.sent_by_user_id,
            "sent_to_user_id": row.sent_to_user_id,
            "department_id": row.department_id,
            "doctor_id": row.doctor_id,
            "case_note_ids": decode_ids(row.case_note_ids_json),
            "case_note_count": row.case_note_count,
            "acknowledged_case_note_ids": decode_ids(row.acknowledged_case_note_ids_json),
            "status": row.status,
            "notes": row.notes,
            "sent_at": row.sent_at,
            "acknowledged_at": row.acknowledged_at,
            "acknowledged_by_user_id": row.acknowledged_by_user_id,
            "acknowledgment_notes": row.acknowledgment_notes,
            "cancelled_at": row.cancelled_at,
        }
