from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

TokenProvider = Callable[[], "str | None"]
Clock = Callable[[], datetime]
ConnectivityListener = Callable[[bool], None]


@dataclass(frozen=True)
class AssignmentsPayload:
    assignments: list[dict[str, Any]] = field(default_factory=list)
    identity: dict[str, Any] | None = None


class RemoteAttendanceApi(Protocol):
    def get_assignments(self, identity_id: str) -> AssignmentsPayload:
        ...

    def get_classes(self, ids: list[str]) -> list[dict[str, Any]]:
        ...

    def get_students_by_class(self, class_ids: list[str]) -> list[dict[str, Any]]:
        ...

    def get_subjects(self) -> list[dict[str, Any]]:
        ...

    def create_teacher_attendance(self, record: dict[str, Any]) -> dict[str, Any]:
        ...

    def update_teacher_attendance(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        ...

    def create_student_attendance(self, record: dict[str, Any]) -> dict[str, Any]:
        ...

    def update_student_attendance(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        ...

    def bulk_upload_teacher_attendance(self, records: list[dict[str, Any]]) -> list[dict[str, Any] | None]:
        ...

    def bulk_upload_student_attendance(self, records: list[dict[str, Any]]) -> list[dict[str, Any] | None]:
        ...


class ConnectivityObserver(Protocol):
    def is_online(self) -> bool:
        ...

    def poll(self) -> bool:
        ...

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        ...


class SecureValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...
