from __future__ import annotations

import pytest

from casenotes.domain.models.case_note import BatchState
from casenotes.domain.rules.batch_rules import (
    ChildCounts,
    can_be_processed,
    check_received_count,
    count_children,
    derive_batch_status,
)


def _batch(status: str = "approved", *, is_verified: bool = False) -> BatchState:
    return BatchState(
        id=1,
        batch_number="BATCH20250314-001",
        status=status,
        requested_by_user_id=3,
        is_verified=is_verified,
    )


@pytest.mark.parametrize(
    ("approved", "rejected", "pending", "expected"),
    [
        (3, 0, 0, "approved"),
        (0, 3, 0, "rejected"),
        (2, 1, 0, "partially_approved"),
        (1, 2, 0, "partially_approved"),
        (2, 0, 1, "pending"),
        (0, 0, 3, "pending"),
        (1, 1, 1, "pending"),
        (0, 0, 0, "pending"),
    ],
)
def test_derive_batch_status(approved: int, rejected: int, pending: int, expected: str) -> None:
    counts = ChildCounts(approved=approved, rejected=rejected, pending=pending)
    assert derive_batch_status("pending", counts) == expected


def test_derive_keeps_current_status_while_children_pending() -> None:
    assert derive_batch_status("approved", ChildCounts(approved=1, pending=1)) == "approved"


def test_count_children_treats_later_statuses_as_approved() -> None:
    counts = count_children(
        ["pending", "approved", "in_progress", "completed", "pending_return_verification", "rejected"]
    )
    assert counts == ChildCounts(approved=4, rejected=1, pending=1)
    assert counts.total == 6


def test_can_be_processed_only_pending() -> None:
    assert can_be_processed(_batch("pending")) is True
    assert can_be_processed(_batch("partially_approved")) is False


def test_check_received_count() -> None:
    assert check_received_count(_batch(), approved_count=3, received_count=3) is None
    assert check_received_count(_batch(), approved_count=3, received_count=0) is None

    too_many = check_received_count(_batch(), approved_count=3, received_count=4)
    assert too_many is not None and too_many.code == "invalid_count"

    for batch, approved in [
        (_batch("partially_approved"), 2),
        (_batch(is_verified=True), 3),
        (_batch(), 0),
    ]:
        refused = check_received_count(batch, approved_count=approved, received_count=0)
        assert refused is not None and refused.code == "not_verifiable"
