from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from casenotes.infrastructure.db.engine import get_engine

SessionFactory = Callable[[], AbstractContextManager[Session]]


def make_session_factory(bind: Engine) -> SessionFactory:
    """One transaction per ``with`` block: commit on exit, roll back and re-raise on error.

    Services take the returned callable as ``session_factory`` so tests can bind them to a throwaway database.
    """
    session_local = sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

    @contextmanager
    def scope() -> Iterator[Session]:
        session: Session = session_local()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


engine = get_engine()
session_scope = make_session_factory(engine)
