"""Case note requests, batches, events and number sequences

Revision ID: 0002_case_note_requests
Revises: 0001_reference_tables
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002_case_note_requests"
down_revision = "0001_reference_tables"
branch_labels = None
depends_on = None

REQUEST_STATUS_CHECK = (
    "status in ('pending','approved','in_progress','completed','rejected','pending_return_verification')"
)


def upgrade() -> None:
    op.create_table(
        "batch_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("batch_number", sa.String(), nullable=False),
        sa.Column("requested_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("approved_count", sa.Integer(), nullable=True),
        sa.Column("received_count", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("processed_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("processing_notes", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verified_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint(
            "status in ('pending','approved','rejected','partially_approved')",
            name="ck_batch_requests_status",
        ),
        sa.UniqueConstraint("batch_number", name="uq_batch_requests_batch_number"),
    )
    op.create_index("ix_batch_requests_requested_by", "batch_requests", ["requested_by_user_id", "status"])

    op.create_table(
        "requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_number", sa.String(), nullable=False),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("requested_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id"), nullable=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column(
            "batch_id",
            sa.Integer(),
            sa.ForeignKey("batch_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("priority", sa.String(), nullable=False, server_default=sa.text("'normal'")),
        sa.Column("purpose", sa.Text(), nullable=False),
        sa.Column("needed_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approval_remarks", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_received", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        sa.Column("received_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("received_notes", sa.Text(), nullable=True),
        sa.Column("is_returned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("returned_at", sa.DateTime(), nullable=True),
        sa.Column("returned_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("return_notes", sa.Text(), nullable=True),
        sa.Column("is_rejected_return", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("return_rejection_reason", sa.Text(), nullable=True),
        sa.Column("return_rejected_at", sa.DateTime(), nullable=True),
        sa.Column("return_rejected_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("return_verified_at", sa.DateTime(), nullable=True),
        sa.Column("return_verified_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "current_pic_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("current_handover_id", sa.Integer(), nullable=True),
        sa.Column("current_handover_request_id", sa.Integer(), nullable=True),
        sa.Column("handover_status", sa.String(), nullable=False, server_default=sa.text("'none'")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(REQUEST_STATUS_CHECK, name="ck_requests_status"),
        sa.CheckConstraint("priority in ('low','normal','high','urgent')", name="ck_requests_priority"),
        sa.CheckConstraint(
            "handover_status in ('none','pending','acknowledged','completed')",
            name="ck_requests_handover_status",
        ),
        sa.CheckConstraint("NOT (is_returned AND status = 'rejected')", name="ck_requests_returned_not_rejected"),
        sa.UniqueConstraint("request_number", name="uq_requests_request_number"),
    )
    op.create_index("ix_requests_status", "requests", ["status"])
    op.create_index("ix_requests_current_pic", "requests", ["current_pic_user_id", "status", "is_received"])
    op.create_index("ix_requests_batch_id", "requests", ["batch_id"])
    op.create_index("ix_requests_needed_date", "requests", ["needed_date"])
    op.create_index("ix_requests_patient_id", "requests", ["patient_id"])

    op.create_table(
        "request_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("request_id", sa.Integer(), sa.ForeignKey("requests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column(
            "actor_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "to_location_id",
            sa.Integer(),
            sa.ForeignKey("locations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("to_person", sa.String(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )
    op.create_index("ix_request_events_request_occurred", "request_events", ["request_id", "occurred_at"])
    op.create_index("ix_request_events_type_occurred", "request_events", ["type", "occurred_at"])

    op.create_table(
        "request_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scope", sa.String(), nullable=False, server_default=sa.text("'request'")),
        sa.Column("date_key", sa.String(length=8), nullable=False),
        sa.Column("current_sequence", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("scope", "date_key", name="uq_request_sequences_scope_date"),
    )


def downgrade() -> None:
    op.drop_table("request_sequences")
    op.drop_index("ix_request_events_type_occurred", table_name="request_events")
    op.drop_index("ix_request_events_request_occurred", table_name="request_events")
    op.drop_table("request_events")
    op.drop_index("ix_requests_patient_id", table_name="requests")
    op.drop_index("ix_requests_needed_date", table_name="requests")
    op.drop_index("ix_requests_batch_id", table_name="requests")
    op.drop_index("ix_requests_current_pic", table_name="requests")
    op.drop_index("ix_requests_status", table_name="requests")
    op.drop_table("requests")
    op.drop_index("ix_batch_requests_requested_by", table_name="batch_requests")
    op.drop_table("batch_requests")
