from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, cast

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, text

VERSIONS = "casenotes.infrastructure.db.migrations.versions"
REVISIONS = [
    "0001_reference_tables",
    "0002_case_note_requests",
    "0003_custody_and_filing",
    "0004_send_outs",
]


def _run_migration(connection, revision: str, *, fn_name: str) -> None:
    module = cast(Any, importlib.import_module(f"{VERSIONS}.{revision}"))
    context = MigrationContext.configure(connection)
    operations = Operations(context)
    original_op = module.op
    try:
        module.op = operations
        getattr(module, fn_name)()
    finally:
        module.op = original_op


def _names(connection, kind: str) -> set[str]:
    rows = connection.execute(text("SELECT name FROM sqlite_master WHERE type=:kind"), {"kind": kind}).fetchall()
    return {str(row[0]) for row in rows}


def _columns(connection, table: str) -> set[str]:
    return {str(row[1]) for row in connection.exec_driver_sql(f"PRAGMA table_info('{table}')").fetchall()}


def _index_sql(connection, name: str) -> str:
    row = connection.execute(text("SELECT sql FROM sqlite_master WHERE type='index' AND name=:name"), {"name": name})
    return str(row.scalar_one())


def test_revisions_chain_in_order() -> None:
    modules = [cast(Any, importlib.import_module(f"{VERSIONS}.{revision}")) for revision in REVISIONS]

    assert [m.revision for m in modules] == REVISIONS
    assert [m.down_revision for m in modules] == [None, *REVISIONS[:-1]]


def test_upgrade_creates_schema_and_downgrade_removes_it(tmp_path: Path) -> None:
    db_path = tmp_path / "migrations.db"
    engine = create_engine(f"sqlite:///{db_path.as_posix()}", future=True)

    with engine.begin() as connection:
        for revision in REVISIONS:
            _run_migration(connection, revision, fn_name="upgrade")

        tables = _names(connection, "table")
        assert {
            "users",
            "departments",
            "locations",
            "doctors",
            "patients",
            "batch_requests",
            "requests",
            "request_events",
            "request_sequences",
            "case_note_handovers",
            "handover_requests",
            "filing_requests",
            "send_outs",
        } <= tables

        indexes = _names(connection, "index")
        assert {"ux_case_note_handovers_in_flight", "ux_handover_requests_pending", "ix_requests_status"} <= indexes
        in_flight_sql = _index_sql(connection, "ux_case_note_handovers_in_flight")
        assert "WHERE status IN ('pending', 'Acknowledge')" in in_flight_sql
        assert "WHERE status = 'pending'" in _index_sql(connection, "ux_handover_requests_pending")

        request_columns = _columns(connection, "requests")
        assert "current_send_out_id" in request_columns

        _run_migration(connection, REVISIONS[-1], fn_name="downgrade")
        tables = _names(connection, "table")
        assert "send_outs" not in tables
        request_columns = _columns(connection, "requests")
        assert "current_send_out_id" not in request_columns

        _run_migration(connection, REVISIONS[-2], fn_name="downgrade")
        tables = _names(connection, "table")
        assert "case_note_handovers" not in tables
        assert "filing_requests" not in tables
        assert "requests" in tables

        for revision in reversed(REVISIONS[:-2]):
            _run_migration(connection, revision, fn_name="downgrade")
        assert _names(connection, "table") == set()
