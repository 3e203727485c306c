from __future__ import annotations

import json

from casenotes.infrastructure.db import models_sqlalchemy as models
from casenotes.infrastructure.db.repositories.reference_repo import ReferenceRepository
from casenotes.infrastructure.db.session import session_scope

SEED_DATA: dict[str, list[dict]] = {
    "users": [
        {"name": "System Administrator", "email": "admin@example.org", "role": "ADMIN"},
        {"name": "Records Officer", "email": "mr.staff@example.org", "role": "MR_STAFF"},
        {"name": "Clinic Assistant A", "email": "ca.a@example.org", "role": "CA"},
        {"name": "Clinic Assistant B", "email": "ca.b@example.org", "role": "CA"},
    ],
    "departments": [
        {"name": "Cardiology", "code": "CARD"},
        {"name": "Orthopaedics", "code": "ORTH"},
        {"name": "General Medicine", "code": "GM"},
    ],
    "locations": [
        {"name": "Medical Records Office", "building": "Main", "floor": "B1"},
        {"name": "Specialist Clinic A", "building": "East Wing", "floor": "2"},
        {"name": "Specialist Clinic B", "building": "East Wing", "floor": "3"},
    ],
    "patients": [
        {"name": "Tan Ah Kow", "mrn": "MRN0000001"},
        {"name": "Siti Aminah", "mrn": "MRN0000002"},
        {"name": "Rajesh Kumar", "mrn": "MRN0000003"},
    ],
}


def seed() -> dict[str, int]:
    repo = ReferenceRepository()
    with session_scope() as session:
        inserted = {
            "users": repo.upsert_simple(session, models.User, SEED_DATA["users"], identity_field="email"),
            "departments": repo.upsert_simple(
                session, models.Department, SEED_DATA["departments"], identity_field="name"
            ),
            "locations": repo.upsert_simple(session, models.Location, SEED_DATA["locations"], identity_field="name"),
            "patients": repo.upsert_simple(session, models.Patient, SEED_DATA["patients"], identity_field="mrn"),
        }
        cardiology = session.query(models.Department).filter_by(name="Cardiology").one()
        inserted["doctors"] = repo.upsert_simple(
            session,
            models.Doctor,
            [{"name": "Dr. Lim Wei Ming", "department_id": cardiology.id}],
            identity_field="name",
        )
    return inserted


if __name__ == "__main__":
    print("Seeded:", json.dumps(seed(), ensure_ascii=False, indent=2))
