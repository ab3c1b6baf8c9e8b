from __future__ import annotations

import json
from pathlib import Path

import pytest

from attendance_sync.bootstrap.container import build_container
from attendance_sync.entrypoints import cli_sync
from attendance_sync.infrastructure import migrations
from attendance_sync.infrastructure.db import get_connection
from tests.fakes import FakeConnectivity, FakeRemoteApi, seed_reference_data


@pytest.fixture
def server() -> FakeRemoteApi:
    api = FakeRemoteApi()
    seed_reference_data(api)
    return api


@pytest.fixture
def cli(tmp_path: Path, monkeypatch, server: FakeRemoteApi):
    monkeypatch.setenv("ATTENDANCE_SYNC_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(cli_sync, "configure_logging", lambda _log_dir: None)
    monkeypatch.setattr(migrations, "configure_logging", lambda _log_dir: None)

    def _build(connection_factory, *, session=None, data_dir=None):
        return build_container(
            connection_factory,
            session=session,
            data_dir=data_dir,
            api=server,
            connectivity=FakeConnectivity(),
            audit_log_path=tmp_path / "audit.jsonl",
        )

    monkeypatch.setattr(cli_sync, "build_container", _build)
    db_path = tmp_path / "cli.db"
    base_args = ["--db", str(db_path), "--data-dir", str(tmp_path)]

    def _run(*args: str) -> int:
        return cli_sync.main([*base_args, *args])

    _run.db_path = db_path
    _run.data_dir = tmp_path
    _run.build = _build
    return _run


def _seed_local(cli, owner_id: str) -> None:
    container = cli.build(lambda: get_connection(cli.db_path), data_dir=cli.data_dir)
    try:
        container.attendance_use_cases.check_in_teacher(owner_id, owner_id, "2025-03-10", "08:00")
        container.attendance_use_cases.mark_student_attendance(owner_id, "student-1", "class-1", "2025-03-10", "present")
    finally:
        container.store.connection.close()


def _json_output(capsys) -> object:
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_pending_reports_dirty_rows(cli, capsys) -> None:
    _seed_local(cli, "teacher-a")

    exit_code = cli("--json", "pending")

    assert exit_code == cli_sync.EXIT_OK
    assert _json_output(capsys) == {"teacher_pending": 1, "student_pending": 1, "total": 2}


def test_sync_pushes_and_reports_success(cli, capsys, server) -> None:
    _seed_local(cli, "teacher-a")

    exit_code = cli("--json", "sync", "--identity", "teacher-a")

    payload = _json_output(capsys)
    assert exit_code == cli_sync.EXIT_OK
    assert payload["status"] == "success"
    assert len(server.teacher_records) == 1
    assert len(server.student_records) == 1


def test_sync_stops_on_conflict_until_decided(cli, capsys, server) -> None:
    _seed_local(cli, "teacher-b")

    assert cli("sync", "--identity", "teacher-a") == cli_sync.EXIT_CONFLICT
    assert "teacher-b" in capsys.readouterr().out
    assert server.teacher_records == {}

    assert cli("--json", "sync", "--identity", "teacher-a", "--discard") == cli_sync.EXIT_OK
    assert _json_output(capsys)["status"] == "success"
    assert server.teacher_records == {}

    assert cli("--json", "pending") == cli_sync.EXIT_OK
    assert _json_output(capsys)["total"] == 0


def test_resync_uses_bulk_upload(cli, capsys, server) -> None:
    _seed_local(cli, "teacher-a")

    exit_code = cli("--json", "resync", "student_attendance")

    assert exit_code == cli_sync.EXIT_OK
    output = _json_output(capsys)
    assert output["status"] == "success"
    assert output["synced_count"] == 1
    assert output["errors"] == []
    assert len(server.calls_to("bulk_upload_student_attendance")) == 1


def test_status_lists_ledger_entries(cli, capsys) -> None:
    _seed_local(cli, "teacher-a")
    cli("sync", "--identity", "teacher-a")
    capsys.readouterr()

    assert cli("status") == cli_sync.EXIT_OK

    output = capsys.readouterr().out
    assert "reference_data" in output
    assert "teacher_attendance" in output


def test_migrate_up_and_status(cli, capsys) -> None:
    assert cli("migrate", "up") == 0
    capsys.readouterr()

    assert cli("migrate", "status") == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == migrations.latest_schema_version()
    assert all(line.startswith("[x]") for line in lines)


def test_resync_offline_sends_nothing(cli, capsys, server, monkeypatch, tmp_path: Path) -> None:
    _seed_local(cli, "teacher-a")

    def _offline_build(connection_factory, *, session=None, data_dir=None):
        return build_container(
            connection_factory,
            session=session,
            data_dir=data_dir,
            api=server,
            connectivity=FakeConnectivity(online=False),
            audit_log_path=tmp_path / "audit.jsonl",
        )

    monkeypatch.setattr(cli_sync, "build_container", _offline_build)

    exit_code = cli("--json", "resync", "student_attendance")

    assert exit_code == cli_sync.EXIT_SYNC_ERRORS
    output = _json_output(capsys)
    assert output["status"] == "offline"
    assert output["synced_count"] == 0
    assert server.calls_to("bulk_upload_student_attendance") == []
