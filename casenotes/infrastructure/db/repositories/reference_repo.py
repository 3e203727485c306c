from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from casenotes.infrastructure.db import models_sqlalchemy as models


class ReferenceRepository:
    def get_patient(self, session: Session, patient_id: int) -> models.Patient | None:
        return session.get(models.Patient, patient_id)

    def get_patients(self, session: Session, patient_ids: Iterable[int]) -> dict[int, models.Patient]:
        ids = sorted(set(patient_ids))
        if not ids:
            return {}
        stmt = select(models.Patient).where(models.Patient.id.in_(ids))
        return {int(p.id): p for p in session.execute(stmt).scalars()}

    def create_patient(self, session: Session, *, name: str, mrn: str, nric: str | None = None) -> models.Patient:
        patient = models.Patient(name=name, mrn=mrn, nric=nric)
        session.add(patient)
        session.flush()
        return patient

    def get_department(self, session: Session, department_id: int) -> models.Department | None:
        return session.get(models.Department, department_id)

    def get_departments(self, session: Session, department_ids: Iterable[int]) -> dict[int, models.Department]:
        ids = sorted(set(department_ids))
        if not ids:
            return {}
        stmt = select(models.Department).where(models.Department.id.in_(ids))
        return {int(d.id): d for d in session.execute(stmt).scalars()}

    def get_doctor(self, session: Session, doctor_id: int) -> models.Doctor | None:
        return session.get(models.Doctor, doctor_id)

    def get_location(self, session: Session, location_id: int) -> models.Location | None:
        return session.get(models.Location, location_id)

    def list_all(self, session: Session, model: type) -> list:
        stmt: Any = select(model)
        return list(session.execute(stmt).scalars())

    def upsert_simple(self, session: Session, model: type, payloads: Iterable[dict], identity_field: str) -> int:
        """Insert or update rows keyed by a natural identity column; returns rows inserted."""
        inserted = 0
        for data in payloads:
            stmt: Any = select(model).where(getattr(model, identity_field) == data[identity_field])
            obj = session.execute(stmt).scalars().first()
            if obj is not None:
                for key, value in data.items():
                    setattr(obj, key, value)
                continue
            session.add(model(**data))
            inserted += 1
        session.flush()
        return inserted
