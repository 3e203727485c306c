"""Handover, handover request and filing tables

Revision ID: 0003_custody_and_filing
Revises: 0002_case_note_requests
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0003_custody_and_filing"
down_revision = "0002_case_note_requests"
branch_labels = None
depends_on = None

IN_FLIGHT_HANDOVER_WHERE = "status IN ('pending', 'Acknowledge')"
PENDING_HANDOVER_REQUEST_WHERE = "status = 'pending'"


def upgrade() -> None:
    op.create_table(
        "case_note_handovers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "case_note_request_id",
            sa.Integer(),
            sa.ForeignKey("requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("handed_over_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("handed_over_to_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id"), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("handover_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("handed_over_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("acknowledged_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("acknowledgement_notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint("status in ('pending','Acknowledge','completed')", name="ck_case_note_handovers_status"),
    )
    op.create_index(
        "ux_case_note_handovers_in_flight",
        "case_note_handovers",
        ["case_note_request_id"],
        unique=True,
        sqlite_where=sa.text(IN_FLIGHT_HANDOVER_WHERE),
        postgresql_where=sa.text(IN_FLIGHT_HANDOVER_WHERE),
    )
    op.create_index(
        "ix_case_note_handovers_to_user",
        "case_note_handovers",
        ["handed_over_to_user_id", "status"],
    )

    op.create_table(
        "handover_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "case_note_request_id",
            sa.Integer(),
            sa.ForeignKey("requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("requested_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("current_holder_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id"), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(), nullable=False, server_default=sa.text("'normal'")),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.Column("responded_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("response_notes", sa.Text(), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint("status in ('pending','approved','rejected')", name="ck_handover_requests_status"),
    )
    op.create_index(
        "ux_handover_requests_pending",
        "handover_requests",
        ["case_note_request_id"],
        unique=True,
        sqlite_where=sa.text(PENDING_HANDOVER_REQUEST_WHERE),
        postgresql_where=sa.text(PENDING_HANDOVER_REQUEST_WHERE),
    )
    op.create_index(
        "ix_handover_requests_holder",
        "handover_requests",
        ["current_holder_user_id", "status"],
    )

    op.create_table(
        "filing_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("filing_number", sa.String(), nullable=False),
        sa.Column("submitted_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("filing_type", sa.String(), nullable=False, server_default=sa.text("'patient'")),
        sa.Column("patient_ids_json", sa.Text(), nullable=True),
        sa.Column("case_note_ids_json", sa.Text(), nullable=True),
        sa.Column("expected_case_notes_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("submission_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint("status in ('pending','approved','rejected')", name="ck_filing_requests_status"),
        sa.CheckConstraint("filing_type in ('patient','case_note')", name="ck_filing_requests_filing_type"),
        sa.UniqueConstraint("filing_number", name="uq_filing_requests_filing_number"),
    )
    op.create_index("ix_filing_requests_status", "filing_requests", ["status", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_filing_requests_status", table_name="filing_requests")
    op.drop_table("filing_requests")
    op.drop_index("ix_handover_requests_holder", table_name="handover_requests")
    op.drop_index("ux_handover_requests_pending", table_name="handover_requests")
    op.drop_table("handover_requests")
    op.drop_index("ix_case_note_handovers_to_user", table_name="case_note_handovers")
    op.drop_index("ux_case_note_handovers_in_flight", table_name="case_note_handovers")
    op.drop_table("case_note_handovers")
