from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import cast

import pytest

from casenotes.application.dto.case_note_dto import CaseNoteCreateRequest
from casenotes.container import Container, build_container
from casenotes.domain.constants import UserRole
from casenotes.infrastructure.db.engine import get_engine
from casenotes.infrastructure.db.models_sqlalchemy import Base, Department, Doctor, Location, Patient, User
from casenotes.infrastructure.db.session import SessionFactory
from casenotes.infrastructure.db.session import make_session_factory as bind_session_factory


def make_session_factory(db_path: Path) -> SessionFactory:
    engine = get_engine(f"sqlite:///{db_path.resolve().as_posix()}", echo=False)
    Base.metadata.create_all(engine)
    return bind_session_factory(engine)


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class World:
    admin_id: int
    mr_staff_id: int
    ca_id: int
    other_ca_id: int
    third_ca_id: int
    department_id: int
    location_id: int
    doctor_id: int
    patient_ids: list[int]


@pytest.fixture
def session_factory(tmp_path: Path) -> SessionFactory:
    return make_session_factory(tmp_path / "casenotes.db")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 14, 9, 30, tzinfo=UTC))


@pytest.fixture
def container(session_factory: SessionFactory, clock: FrozenClock) -> Container:
    return build_container(session_factory=session_factory, clock=clock)


@pytest.fixture
def world(session_factory: SessionFactory) -> World:
    with session_factory() as session:
        users = [
            User(name="Admin", email="admin@example.org", role=UserRole.ADMIN.value),
            User(name="Records Officer", email="mr@example.org", role=UserRole.MR_STAFF.value),
            User(name="Clinic Assistant A", email="ca.a@example.org", role=UserRole.CA.value),
            User(name="Clinic Assistant B", email="ca.b@example.org", role=UserRole.CA.value),
            User(name="Clinic Assistant C", email="ca.c@example.org", role=UserRole.CA.value),
        ]
        department = Department(name="Cardiology", code="CARD")
        location = Location(name="Specialist Clinic A", building="East Wing", floor="2")
        patients = [
            Patient(name="Tan Ah Kow", mrn="MRN0000001"),
            Patient(name="Siti Aminah", mrn="MRN0000002"),
            Patient(name="Rajesh Kumar", mrn="MRN0000003"),
        ]
        session.add_all([*users, department, location, *patients])
        session.flush()
        doctor = Doctor(name="Dr. Lim", department_id=department.id)
        session.add(doctor)
        session.flush()
        return World(
            admin_id=cast(int, users[0].id),
            mr_staff_id=cast(int, users[1].id),
            ca_id=cast(int, users[2].id),
            other_ca_id=cast(int, users[3].id),
            third_ca_id=cast(int, users[4].id),
            department_id=cast(int, department.id),
            location_id=cast(int, location.id),
            doctor_id=cast(int, doctor.id),
            patient_ids=[cast(int, p.id) for p in patients],
        )


RequestFactory = Callable[..., CaseNoteCreateRequest]


@pytest.fixture
def make_request(world: World) -> RequestFactory:
    def _make(*, patient_index: int = 0, needed_date: date | None = None, **overrides) -> CaseNoteCreateRequest:
        payload = dict(
            patient_id=world.patient_ids[patient_index],
            requested_by_user_id=world.ca_id,
            department_id=world.department_id,
            doctor_id=world.doctor_id,
            location_id=world.location_id,
            priority="normal",
            purpose="Follow-up clinic",
            needed_date=needed_date,
        )
        payload.update(overrides)
        return CaseNoteCreateRequest(**payload)

    return _make


@pytest.fixture
def received_note(container: Container, world: World, make_request: RequestFactory) -> int:
    """An approved case note held and received by the requesting clinic assistant."""
    created = container.case_note_service.create(make_request())
    note_id = created.value.id
    assert container.case_note_service.approve(note_id, world.mr_staff_id).ok
    assert container.case_note_service.mark_received(note_id, world.ca_id).ok
    return note_id
