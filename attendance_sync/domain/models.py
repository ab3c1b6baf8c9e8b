from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

STUDENT_STATUSES = frozenset({"present", "absent", "late", "excused"})
TEACHER_STATUSES = frozenset({"present", "absent", "late", "on_leave"})


@dataclass(frozen=True)
class Identity:
    id: str
    first_name: str | None
    last_name: str | None
    email: str | None = None
    role: str | None = None

    @property
    def display_name(self) -> str:
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.email or self.id


@dataclass(frozen=True)
class TeacherAttendance:
    id: str
    owner_id: str
    teacher_id: str
    date: str
    status: str
    check_in: str | None = None
    check_out: str | None = None
    notes: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_synced_at: str | None = None
    is_dirty: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TeacherAttendance":
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            teacher_id=row["teacher_id"],
            date=row["date"],
            status=row["status"],
            check_in=row["check_in"],
            check_out=row["check_out"],
            notes=row["notes"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_synced_at=row["last_synced_at"],
            is_dirty=bool(row["is_dirty"]),
        )


@dataclass(frozen=True)
class StudentAttendance:
    id: str
    owner_id: str
    student_id: str
    class_id: str
    date: str
    status: str
    marked_by: str
    teacher_attendance_id: str | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_synced_at: str | None = None
    is_dirty: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StudentAttendance":
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            student_id=row["student_id"],
            class_id=row["class_id"],
            date=row["date"],
            status=row["status"],
            marked_by=row["marked_by"],
            teacher_attendance_id=row["teacher_attendance_id"],
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_synced_at=row["last_synced_at"],
            is_dirty=bool(row["is_dirty"]),
        )


@dataclass(frozen=True)
class SyncConfig:
    api_base_url: str
    device_id: str
    request_timeout_seconds: float = 10.0
    staleness_window_seconds: int = 3600
    sync_interval_seconds: int = 900
