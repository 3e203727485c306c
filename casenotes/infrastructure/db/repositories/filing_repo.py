from __future__ import annotations

import json
from datetime import datetime
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.orm import Session

from casenotes.domain.constants import FilingStatus
from casenotes.infrastructure.db.models_sqlalchemy import FilingRequest
from casenotes.infrastructure.db.repositories.conditional import conditional_update


def encode_ids(value: list[int]) -> str | None:
    return json.dumps(value) if value else None


def decode_ids(value: object) -> list[int]:
    if not value:
        return []
    try:
        parsed = json.loads(str(value))
    except (TypeError, ValueError):
        return []
    return [int(item) for item in parsed] if isinstance(parsed, list) else []


class FilingRepository:
    def get(self, session: Session, filing_id: int) -> FilingRequest | None:
        return session.get(FilingRequest, filing_id, populate_existing=True)

    def create(
        self,
        session: Session,
        *,
        filing_number: str,
        submitted_by_user_id: int,
        filing_type: str,
        patient_ids: list[int],
        case_note_ids: list[int],
        expected_case_notes_count: int,
        submission_notes: str | None,
        now: datetime,
    ) -> FilingRequest:
        row = FilingRequest(
            filing_number=filing_number,
            submitted_by_user_id=submitted_by_user_id,
            filing_type=filing_type,
            patient_ids_json=encode_ids(patient_ids),
            case_note_ids_json=encode_ids(case_note_ids),
            expected_case_notes_count=expected_case_notes_count,
            submission_notes=submission_notes,
            status=FilingStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()
        return row

    def decide(self, session: Session, filing_id: int, *, values: dict[str, Any], now: datetime) -> FilingRequest:
        conditional_update(
            session,
            FilingRequest,
            filing_id,
            expected={"status": FilingStatus.PENDING.value},
            values={**values, "updated_at": now},
            entity="filing request",
        )
        return cast(FilingRequest, self.get(session, filing_id))

    def list_requests(
        self,
        session: Session,
        *,
        status: str | None = None,
        submitted_by_user_id: int | None = None,
    ) -> list[FilingRequest]:
        stmt = select(FilingRequest)
        if status:
            stmt = stmt.where(FilingRequest.status == status)
        if submitted_by_user_id is not None:
            stmt = stmt.where(FilingRequest.submitted_by_user_id == submitted_by_user_id)
        stmt = stmt.order_by(FilingRequest.created_at.desc(), FilingRequest.id.desc())
        return list(session.execute(stmt).scalars())

    def to_dict(self, row: FilingRequest) -> dict[str, Any]:
        return {
            "id": row.id,
            "filing_number": row.filing_number,
            "submitted_by_user_id": row.submitted_by_user_id,
            "filing_type": row.filing_type,
            "patient_ids": decode_ids(row.patient_ids_json),
            "case_note_ids": decode_ids(row.case_note_ids_json),
            "expected_case_notes_count": row.expected_case_notes_count,
            "submission_notes": row.submission_notes,
            "status": row.status,
            "approved_at": row.approved_at,
            "approved_by_user_id": row.approved_by_user_id,
            "approval_notes": row.approval_notes,
            "rejection_reason": row.rejection_reason,
            "rejected_at": row.rejected_at,
            "rejected_by_user_id": row.rejected_by_user_id,
            "created_at": row.created_at,
        }
