from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import select

from casenotes.infrastructure.db.engine import get_engine
from casenotes.infrastructure.db.models_sqlalchemy import Base, Department
from casenotes.infrastructure.db.session import make_session_factory


def test_scope_commits_on_exit_and_rolls_back_on_error(tmp_path: Path) -> None:
    engine = get_engine(f"sqlite:///{(tmp_path / 'scope.db').resolve().as_posix()}", echo=False)
    Base.metadata.create_all(engine)
    scope = make_session_factory(engine)

    with scope() as session:
        session.add(Department(name="Cardiology", code="CARD"))

    with pytest.raises(RuntimeError, match="lost"), scope() as session:
        session.add(Department(name="Oncology", code="ONC"))
        session.flush()
        raise RuntimeError("lost")

    with scope() as session:
        names = [str(d.name) for d in session.execute(select(Department)).scalars()]
    assert names == ["Cardiology"]
    engine.dispose()
