from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from casenotes.domain.constants import BatchStatus, RequestStatus
from casenotes.domain.models.case_note import BatchState
from casenotes.domain.models.transition import Rejected


@dataclass(frozen=True, slots=True)
class ChildCounts:
    approved: int = 0
    rejected: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.approved + self.rejected + self.pending


def count_children(statuses: Iterable[str]) -> ChildCounts:
    """Anything past approval (in progress, returned, completed) counts as approved."""
    approved = rejected = pending = 0
    for status in statuses:
        if status == RequestStatus.PENDING:
            pending += 1
        elif status == RequestStatus.REJECTED:
            rejected += 1
        else:
            approved += 1
    return ChildCounts(approved=approved, rejected=rejected, pending=pending)


def derive_batch_status(current_status: str, counts: ChildCounts) -> str:
    if counts.pending > 0 or counts.total == 0:
        return current_status
    if counts.rejected == 0:
        return BatchStatus.APPROVED.value
    if counts.approved == 0:
        return BatchStatus.REJECTED.value
    return BatchStatus.PARTIALLY_APPROVED.value


def can_be_processed(batch: BatchState) -> bool:
    return batch.status == BatchStatus.PENDING


def can_be_verified(batch: BatchState, approved_count: int) -> bool:
    return batch.status == BatchStatus.APPROVED and not batch.is_verified and approved_count > 0


def check_received_count(batch: BatchState, *, approved_count: int, received_count: int) -> Rejected | None:
    if not can_be_verified(batch, approved_count):
        return Rejected(
            "not_verifiable",
            f"Batch {batch.batch_number} must be approved, unverified and have approved case notes",
        )
    if received_count < 0 or received_count > approved_count:
        return Rejected(
            "invalid_count",
            f"Received count {received_count} must be between 0 and approved count {approved_count}",
        )
    return None
