from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.sql import expression

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=naming_convention)


class Base(DeclarativeBase):
    metadata = metadata


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


REQUEST_STATUS_CHECK = (
    "status in ('pending','approved','in_progress','completed','rejected','pending_return_verification')"
)
IN_FLIGHT_HANDOVER_WHERE = "status IN ('pending', 'Acknowledge')"
PENDING_HANDOVER_REQUEST_WHERE = "status = 'pending'"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=expression.true())
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (CheckConstraint("role in ('ADMIN','MR_STAFF','CA')", name="ck_users_role"),)


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    code = Column(String)
    is_active = Column(Boolean, nullable=False, server_default=expression.true())


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    building = Column(String)
    floor = Column(String)
    is_active = Column(Boolean, nullable=False, server_default=expression.true())


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, server_default=expression.true())


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    mrn = Column(String, nullable=False, unique=True)
    nric = Column(String)
    created_at = Column(DateTime, nullable=False, default=utc_now)


class BatchRequest(Base):
    __tablename__ = "batch_requests"

    id = Column(Integer, primary_key=True)
    batch_number = Column(String, nullable=False, unique=True)
    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String, nullable=False, server_default=expression.literal("pending"))
    notes = Column(Text)
    approved_count = Column(Integer)
    received_count = Column(Integer)
    processed_at = Column(DateTime)
    processed_by_user_id = Column(Integer, ForeignKey("users.id"))
    processing_notes = Column(Text)
    is_verified = Column(Boolean, nullable=False, server_default=expression.false())
    verified_at = Column(DateTime)
    verified_by_user_id = Column(Integer, ForeignKey("users.id"))
    verification_notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','approved','rejected','partially_approved')",
            name="ck_batch_requests_status",
        ),
        Index("ix_batch_requests_requested_by", "requested_by_user_id", "status"),
    )


class CaseNoteRequest(Base):
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True)
    request_number = Column(String, nullable=False, unique=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    batch_id = Column(Integer, ForeignKey("batch_requests.id", ondelete="SET NULL"), nullable=True)
    priority = Column(String, nullable=False, server_default=expression.literal("normal"))
    purpose = Column(Text, nullable=False)
    needed_date = Column(Date)
    remarks = Column(Text)

    status = Column(String, nullable=False, server_default=expression.literal("pending"))
    version = Column(Integer, nullable=False, server_default=expression.literal("1"))

    approved_at = Column(DateTime)
    approved_by_user_id = Column(Integer, ForeignKey("users.id"))
    approval_remarks = Column(Text)
    rejection_reason = Column(Text)
    rejected_at = Column(DateTime)
    rejected_by_user_id = Column(Integer, ForeignKey("users.id"))
    completed_at = Column(DateTime)
    completed_by_user_id = Column(Integer, ForeignKey("users.id"))

    is_received = Column(Boolean, nullable=False, server_default=expression.false())
    received_at = Column(DateTime)
    received_by_user_id = Column(Integer, ForeignKey("users.id"))
    received_notes = Column(Text)

    is_returned = Column(Boolean, nullable=False, server_default=expression.false())
    returned_at = Column(DateTime)
    returned_by_user_id = Column(Integer, ForeignKey("users.id"))
    return_notes = Column(Text)
    is_rejected_return = Column(Boolean, nullable=False, server_default=expression.false())
    return_rejection_reason = Column(Text)
    return_rejected_at = Column(DateTime)
    return_rejected_by_user_id = Column(Integer, ForeignKey("users.id"))
    return_verified_at = Column(DateTime)
    return_verified_by_user_id = Column(Integer, ForeignKey("users.id"))

    # Custody pointers; the satellite rows reference this table, not the other way round.
    current_pic_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    current_handover_id = Column(Integer)
    current_handover_request_id = Column(Integer)
    current_send_out_id = Column(Integer)
    handover_status = Column(String, nullable=False, server_default=expression.literal("none"))

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
    deleted_at = Column(DateTime)

    patient = relationship("Patient", lazy="joined")

    __table_args__ = (
        CheckConstraint(REQUEST_STATUS_CHECK, name="ck_requests_status"),
        CheckConstraint("priority in ('low','normal','high','urgent')", name="ck_requests_priority"),
        CheckConstraint(
            "handover_status in ('none','pending','acknowledged','completed')",
            name="ck_requests_handover_status",
        ),
        CheckConstraint(
            "NOT (is_returned AND status = 'rejected')",
            name="ck_requests_returned_not_rejected",
        ),
        Index("ix_requests_status", "status"),
        Index("ix_requests_current_pic", "current_pic_user_id", "status", "is_received"),
        Index("ix_requests_batch_id", "batch_id"),
        Index("ix_requests_needed_date", "needed_date"),
        Index("ix_requests_patient_id", "patient_id"),
    )


class RequestEvent(Base):
    __tablename__ = "request_events"

    id = Column(Integer, primary_key=True)
    request_id = Column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    type = Column(String, nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    to_location_id = Column(Integer, ForeignKey("locations.id", ondelete="SET NULL"))
    to_person = Column(String)
    reason = Column(Text)
    occurred_at = Column(DateTime, nullable=False)
    metadata_json = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_request_events_request_occurred", "request_id", "occurred_at"),
        Index("ix_request_events_type_occurred", "type", "occurred_at"),
    )


class RequestSequence(Base):
    __tablename__ = "request_sequences"

    id = Column(Integer, primary_key=True)
    scope = Column(String, nullable=False, server_default=expression.literal("request"))
    date_key = Column(String(8), nullable=False)
    current_sequence = Column(Integer, nullable=False, server_default=expression.literal("0"))
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (UniqueConstraint("scope", "date_key", name="uq_request_sequences_scope_date"),)


class CaseNoteHandover(Base):
    __tablename__ = "case_note_handovers"

    id = Column(Integer, primary_key=True)
    case_note_request_id = Column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    handed_over_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    handed_over_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"))
    location_id = Column(Integer, ForeignKey("locations.id"))
    doctor_id = Column(Integer, ForeignKey("doctors.id"))
    reason = Column(Text)
    handover_notes = Column(Text)
    status = Column(String, nullable=False, server_default=expression.literal("pending"))
    handed_over_at = Column(DateTime, nullable=False, default=utc_now)
    acknowledged_at = Column(DateTime)
    acknowledged_by_user_id = Column(Integer, ForeignKey("users.id"))
    acknowledgement_notes = Column(Text)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("status in ('pending','Acknowledge','completed')", name="ck_case_note_handovers_status"),
        Index(
            "ux_case_note_handovers_in_flight",
            "case_note_request_id",
            unique=True,
            sqlite_where=text(IN_FLIGHT_HANDOVER_WHERE),
            postgresql_where=text(IN_FLIGHT_HANDOVER_WHERE),
        ),
        Index("ix_case_note_handovers_to_user", "handed_over_to_user_id", "status"),
    )


class HandoverRequest(Base):
    __tablename__ = "handover_requests"

    id = Column(Integer, primary_key=True)
    case_note_request_id = Column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    current_holder_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"))
    location_id = Column(Integer, ForeignKey("locations.id"))
    doctor_id = Column(Integer, ForeignKey("doctors.id"))
    reason = Column(Text)
    priority = Column(String, nullable=False, server_default=expression.literal("normal"))
    status = Column(String, nullable=False, server_default=expression.literal("pending"))
    responded_at = Column(DateTime)
    responded_by_user_id = Column(Integer, ForeignKey("users.id"))
    response_notes = Column(Text)
    verified_at = Column(DateTime)
    verification_notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("status in ('pending','approved','rejected')", name="ck_handover_requests_status"),
        Index(
            "ux_handover_requests_pending",
            "case_note_request_id",
            unique=True,
            sqlite_where=text(PENDING_HANDOVER_REQUEST_WHERE),
            postgresql_where=text(PENDING_HANDOVER_REQUEST_WHERE),
        ),
        Index("ix_handover_requests_holder", "current_holder_user_id", "status"),
    )


class FilingRequest(Base):
    __tablename__ = "filing_requests"

    id = Column(Integer, primary_key=True)
    filing_number = Column(String, nullable=False, unique=True)
    submitted_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    filing_type = Column(String, nullable=False, server_default=expression.literal("patient"))
    patient_ids_json = Column(Text)
    case_note_ids_json = Column(Text)
    expected_case_notes_count = Column(Integer, nullable=False, server_default=expression.literal("0"))
    submission_notes = Column(Text)
    status = Column(String, nullable=False, server_default=expression.literal("pending"))
    approved_at = Column(DateTime)
    approved_by_user_id = Column(Integer, ForeignKey("users.id"))
    approval_notes = Column(Text)
    rejection_reason = Column(Text)
    rejected_at = Column(DateTime)
    rejected_by_user_id = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("status in ('pending','approved','rejected')", name="ck_filing_requests_status"),
        CheckConstraint("filing_type in ('patient','case_note')", name="ck_filing_requests_filing_type"),
        Index("ix_filing_requests_status", "status", "created_at"),
    )


class SendOut(Base):
    __tablename__ = "send_outs"

    id = Column(Integer, primary_key=True)
    send_out_number = Column(String, nullable=False, unique=True)
    sent_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sent_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    case_note_ids_json = Column(Text, nullable=False)
    case_note_count = Column(Integer, nullable=False)
    acknowledged_case_note_ids_json = Column(Text)
    status = Column(String, nullable=False, server_default=expression.literal("pending"))
    notes = Column(Text)
    sent_at = Column(DateTime, nullable=False, default=utc_now)
    acknowledged_at = Column(DateTime)
    acknowledged_by_user_id = Column(Integer, ForeignKey("users.id"))
    acknowledgment_notes = Column(Text)
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("status in ('pending','Acknowledge','cancelled')", name="ck_send_outs_status"),
        Index("ix_send_outs_to_user", "sent_to_user_id", "status"),
        Index("ix_send_outs_by_user", "sent_by_user_id", "sent_at"),
    )
