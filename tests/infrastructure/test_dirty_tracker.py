from __future__ import annotations

import pytest

from attendance_sync.core.errors import LocalStoreError
from attendance_sync.infrastructure.dirty_tracker import DirtyTracker
from attendance_sync.infrastructure.local_store import LocalStore, format_timestamp
from tests.fakes import FakeClock


def _check_in(store: LocalStore) -> str:
    return store.insert_local(
        "teacher_attendance",
        {"teacher_id": "teacher-a", "date": "2025-03-10", "check_in": "08:00", "status": "present"},
        owner_id="teacher-a",
    )


def _mark(store: LocalStore, teacher_attendance_id: str | None, student_id: str = "student-1") -> str:
    return store.insert_local(
        "student_attendance",
        {
            "student_id": student_id,
            "class_id": "class-1",
            "teacher_attendance_id": teacher_attendance_id,
            "date": "2025-03-10",
            "status": "present",
            "marked_by": "teacher-a",
        },
        owner_id="teacher-a",
    )


def test_list_and_count_dirty(store: LocalStore, tracker: DirtyTracker) -> None:
    _check_in(store)
    store.upsert_remote("teacher_attendance", {"id": "srv-clean", "teacherId": "teacher-a"}, owner_id="teacher-a")

    assert tracker.count_dirty("teacher_attendance") == 1
    assert [row["is_dirty"] for row in tracker.list_dirty("teacher_attendance")] == [1]


def test_mark_dirty_sets_flag_and_updated_at(store: LocalStore, tracker: DirtyTracker, clock: FakeClock) -> None:
    store.upsert_remote("teacher_attendance", {"id": "srv-1", "teacherId": "teacher-a"}, owner_id="teacher-a")
    clock.advance(seconds=30)

    assert tracker.mark_dirty("teacher_attendance", "srv-1") is True

    row = store.get_row("teacher_attendance", "srv-1")
    assert row["is_dirty"] == 1
    assert row["updated_at"] == format_timestamp(clock())


def test_clear_dirty_without_new_id(store: LocalStore, tracker: DirtyTracker, clock: FakeClock) -> None:
    record_id = _check_in(store)
    clock.advance(seconds=10)

    assert tracker.clear_dirty("teacher_attendance", record_id) is True

    row = store.get_row("teacher_attendance", record_id)
    assert row["is_dirty"] == 0
    assert row["last_synced_at"] == format_timestamp(clock())


def test_clear_dirty_rewrites_id_and_every_reference(store: LocalStore, tracker: DirtyTracker) -> None:
    teacher_row_id = _check_in(store)
    first_mark = _mark(store, teacher_row_id, "student-1")
    second_mark = _mark(store, teacher_row_id, "student-2")

    tracker.clear_dirty("teacher_attendance", teacher_row_id, "srv-teacher-1")

    assert store.get_row("teacher_attendance", teacher_row_id) is None
    assert store.get_row("teacher_attendance", "srv-teacher-1")["is_dirty"] == 0
    for mark_id in (first_mark, second_mark):
        mark = store.get_row("student_attendance", mark_id)
        assert mark["teacher_attendance_id"] == "srv-teacher-1"
        assert mark["is_dirty"] == 1
    dangling = store.select("student_attendance", "teacher_attendance_id = ?", (teacher_row_id,))
    assert dangling == []


def test_clear_dirty_replaces_row_already_pulled_with_same_server_id(store: LocalStore, tracker: DirtyTracker) -> None:
    record_id = _check_in(store)
    store.upsert_remote("teacher_attendance", {"id": "srv-1", "teacherId": "teacher-a", "notes": "viejo"}, owner_id="teacher-a")

    tracker.clear_dirty("teacher_attendance", record_id, "srv-1")

    rows = store.select("teacher_attendance")
    assert [row["id"] for row in rows] == ["srv-1"]
    assert rows[0]["check_in"] == "08:00"


def test_compare_and_clear_keeps_row_dirty_after_concurrent_edit(
    store: LocalStore, tracker: DirtyTracker, clock: FakeClock
) -> None:
    record_id = _check_in(store)
    read_updated_at = store.get_row("teacher_attendance", record_id)["updated_at"]
    clock.advance(seconds=1)
    store.update_local("teacher_attendance", record_id, {"notes": "editado en vuelo"})

    cleared = tracker.clear_dirty("teacher_attendance", record_id, "srv-1", expected_updated_at=read_updated_at)

    assert cleared is False
    row = store.get_row("teacher_attendance", "srv-1")
    assert row["is_dirty"] == 1
    assert row["notes"] == "editado en vuelo"


def test_clear_dirty_rejects_missing_row(tracker: DirtyTracker) -> None:
    with pytest.raises(LocalStoreError):
        tracker.clear_dirty("teacher_attendance", "no-existe")


def test_clear_dirty_rejects_local_prefixed_server_id(store: LocalStore, tracker: DirtyTracker) -> None:
    record_id = _check_in(store)

    with pytest.raises(LocalStoreError):
        tracker.clear_dirty("teacher_attendance", record_id, "local_1_abcdefghi")

    assert store.get_row("teacher_attendance", record_id)["is_dirty"] == 1


def test_failed_rewrite_leaves_every_table_untouched(store: LocalStore, tracker: DirtyTracker) -> None:
    teacher_row_id = _check_in(store)
    mark_id = _mark(store, teacher_row_id)
    store.connection.execute(
        """
        CREATE TRIGGER fail_on_rewrite BEFORE UPDATE OF teacher_attendance_id ON student_attendance
        BEGIN SELECT RAISE(ABORT, 'simulated crash'); END
        """
    )

    with pytest.raises(LocalStoreError):
        tracker.clear_dirty("teacher_attendance", teacher_row_id, "srv-1")

    assert store.get_row("teacher_attendance", teacher_row_id)["is_dirty"] == 1
    assert store.get_row("teacher_attendance", "srv-1") is None
    assert store.get_row("student_attendance", mark_id)["teacher_attendance_id"] == teacher_row_id


def test_repair_interrupted_rewrites_remarks_clean_temporary_rows(store: LocalStore, tracker: DirtyTracker) -> None:
    record_id = _check_in(store)
    store.connection.execute("UPDATE teacher_attendance SET is_dirty = 0 WHERE id = ?", (record_id,))
    store.connection.commit()

    assert tracker.find_interrupted_rewrites() == [("teacher_attendance", record_id)]
    assert tracker.repair_interrupted_rewrites() == 1
    assert store.get_row("teacher_attendance", record_id)["is_dirty"] == 1
    assert tracker.find_interrupted_rewrites() == []
