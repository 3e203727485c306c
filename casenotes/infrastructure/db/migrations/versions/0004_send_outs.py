"""Send-out table and the case note send-out pointer

Revision ID: 0004_send_outs
Revises: 0003_custody_and_filing
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0004_send_outs"
down_revision = "0003_custody_and_filing"
branch_labels = None
depends_on = None


def _get_existing_columns(conn, table: str) -> set[str]:
    rows = conn.exec_driver_sql(f"PRAGMA table_info('{table}')").fetchall()
    return {row[1] for row in rows}


def upgrade() -> None:
    op.create_table(
        "send_outs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("send_out_number", sa.String(), nullable=False),
        sa.Column("sent_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sent_to_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=False),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id"), nullable=False),
        sa.Column("case_note_ids_json", sa.Text(), nullable=False),
        sa.Column("case_note_count", sa.Integer(), nullable=False),
        sa.Column("acknowledged_case_note_ids_json", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("acknowledged_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("acknowledgment_notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint("status in ('pending','Acknowledge','cancelled')", name="ck_send_outs_status"),
        sa.UniqueConstraint("send_out_number", name="uq_send_outs_send_out_number"),
    )
    op.create_index("ix_send_outs_to_user", "send_outs", ["sent_to_user_id", "status"])
    op.create_index("ix_send_outs_by_user", "send_outs", ["sent_by_user_id", "sent_at"])

    # plain ADD COLUMN: rebuilding requests would cascade-delete its events while foreign keys are on
    if "current_send_out_id" not in _get_existing_columns(op.get_bind(), "requests"):
        op.add_column("requests", sa.Column("current_send_out_id", sa.Integer(), nullable=True))


def downgrade() -> None:
    if "current_send_out_id" in _get_existing_columns(op.get_bind(), "requests"):
        op.drop_column("requests", "current_send_out_id")
    op.drop_index("ix_send_outs_by_user", table_name="send_outs")
    op.drop_index("ix_send_outs_to_user", table_name="send_outs")
    op.drop_table("send_outs")
