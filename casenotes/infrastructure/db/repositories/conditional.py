from __future__ import annotations

from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from casenotes.domain.errors import ConcurrentModificationError


def conditional_update(
    session: Session,
    model: type,
    row_id: int,
    *,
    expected: dict[str, Any],
    values: dict[str, Any],
    entity: str,
) -> None:
    """UPDATE ... WHERE id=? AND <expected columns>; zero rows means another writer won."""
    stmt: Any = update(model).where(model.id == row_id)
    for column, value in expected.items():
        attr = getattr(model, column)
        stmt = stmt.where(attr.is_(None) if value is None else attr == value)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)
    result = session.execute(stmt)
    if result.rowcount != 1:
        raise ConcurrentModificationError(entity, row_id)
