from __future__ import annotations

import sqlite3

from attendance_sync.infrastructure.migrations import (
    MigrationRunner,
    latest_schema_version,
    run_data_fixups,
    run_migrations,
)
from attendance_sync.infrastructure.secure_store import MIGRATION_VERSION_KEY
from tests.fakes import FakeSecureStore


def _tables(connection: sqlite3.Connection) -> set[str]:
    rows = connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


def test_run_migrations_creates_schema_and_publishes_version() -> None:
    connection = sqlite3.connect(":memory:")
    secure_store = FakeSecureStore()

    version = run_migrations(connection, version_writer=secure_store)

    assert version == latest_schema_version() == 3
    assert secure_store.values[MIGRATION_VERSION_KEY] == "3"
    assert connection.execute("PRAGMA user_version").fetchone()[0] == 3
    assert {
        "identities",
        "classes",
        "assignments",
        "students",
        "subjects",
        "teacher_attendance",
        "student_attendance",
        "sync_status",
        "schema_migrations",
    } <= _tables(connection)


def test_run_migrations_is_idempotent() -> None:
    connection = sqlite3.connect(":memory:")
    run_migrations(connection)

    assert MigrationRunner(connection).apply_all() == []
    assert run_migrations(connection) == 3


def test_rollback_and_status() -> None:
    connection = sqlite3.connect(":memory:")
    runner = MigrationRunner(connection)
    runner.apply_all()

    assert runner.rollback(1) == [3]
    assert runner.current_version() == 2
    assert [item["applied"] for item in runner.status()] == [True, True, False]
    assert connection.execute("PRAGMA user_version").fetchone()[0] == 2


def test_data_fixups_recover_interrupted_rewrite(connection: sqlite3.Connection) -> None:
    connection.execute(
        """
        INSERT INTO teacher_attendance (id, teacher_id, date, status, owner_id, created_at, updated_at, is_dirty)
        VALUES ('local_1700000000_abcdefghi', 't', '2025-03-10', 'present', 't', 'x', 'x', 0)
        """
    )
    connection.commit()

    assert run_data_fixups(connection) == 1
    row = connection.execute(
        "SELECT is_dirty FROM teacher_attendance WHERE id = 'local_1700000000_abcdefghi'"
    ).fetchone()
    assert row["is_dirty"] == 1
