from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from casenotes.infrastructure.db.models_sqlalchemy import User


class UserRepository:
    def get_by_id(self, session: Session, user_id: int) -> User | None:
        stmt = select(User).where(User.id == user_id)
        return session.execute(stmt).scalar_one_or_none()

    def get_by_email(self, session: Session, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        return session.execute(stmt).scalar_one_or_none()

    def get_many(self, session: Session, user_ids: set[int]) -> dict[int, User]:
        if not user_ids:
            return {}
        stmt = select(User).where(User.id.in_(sorted(user_ids)))
        return {int(user.id): user for user in session.execute(stmt).scalars()}

    def list_by_role(self, session: Session, role: str) -> list[User]:
        stmt = select(User).where(User.role == role, User.is_active.is_(True)).order_by(User.name.asc())
        return list(session.execute(stmt).scalars())

    def create(self, session: Session, *, name: str, email: str, role: str) -> User:
        user = User(name=name, email=email, role=role, is_active=True)
        session.add(user)
        session.flush()  # populate id
        return user
