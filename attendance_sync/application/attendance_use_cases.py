from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Any

from attendance_sync.core.errors import ValidationError
from attendance_sync.domain.models import STUDENT_STATUSES, TEACHER_STATUSES, StudentAttendance, TeacherAttendance
from attendance_sync.domain.tables import ASSIGNMENTS, STUDENT_ATTENDANCE, STUDENTS, TEACHER_ATTENDANCE
from attendance_sync.infrastructure.local_store import LocalStore

logger = logging.getLogger(__name__)


def _require(value: str | None, field_name: str) -> str:
    texto = (value or "").strip()
    if not texto:
        raise ValidationError(f"El campo {field_name} es obligatorio.")
    return texto


def _validate_date(value: str) -> str:
    texto = _require(value, "date")
    try:
        date_type.fromisoformat(texto)
    except ValueError as exc:
        raise ValidationError(f"Fecha inválida: {texto}. Formato esperado YYYY-MM-DD.") from exc
    return texto


def _validate_status(value: str, allowed: frozenset[str]) -> str:
    if value not in allowed:
        raise ValidationError(f"Estado no válido: {value}. Valores permitidos: {', '.join(sorted(allowed))}.")
    return value


class AttendanceUseCases:
    """Acciones locales de asistencia. Toda escritura deja la fila sucia para el próximo push."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def mark_student_attendance(
        self,
        owner_id: str,
        student_id: str,
        class_id: str,
        date: str,
        status: str,
        *,
        notes: str | None = None,
        teacher_attendance_id: str | None = None,
    ) -> str:
        owner = _require(owner_id, "owner_id")
        values: dict[str, Any] = {
            "student_id": _require(student_id, "student_id"),
            "class_id": _require(class_id, "class_id"),
            "date": _validate_date(date),
            "status": _validate_status(status, STUDENT_STATUSES),
            "notes": notes,
            "marked_by": owner,
        }
        if teacher_attendance_id:
            values["teacher_attendance_id"] = teacher_attendance_id

        existing = self._store.select(
            STUDENT_ATTENDANCE.name,
            "student_id = ? AND class_id = ? AND date = ?",
            (values["student_id"], values["class_id"], values["date"]),
        )
        if existing:
            record_id = existing[0]["id"]
            changes = {key: values[key] for key in ("status", "notes", "marked_by")}
            if teacher_attendance_id:
                changes["teacher_attendance_id"] = teacher_attendance_id
            self._store.update_local(STUDENT_ATTENDANCE.name, record_id, changes)
            logger.info("student_attendance_remarked id=%s status=%s", record_id, status)
            return record_id

        record_id = self._store.insert_local(STUDENT_ATTENDANCE.name, values, owner_id=owner)
        logger.info("student_attendance_marked id=%s status=%s", record_id, status)
        return record_id

    def update_student_attendance(
        self,
        record_id: str,
        *,
        status: str | None = None,
        notes: str | None = None,
    ) -> bool:
        changes: dict[str, Any] = {}
        if status is not None:
            changes["status"] = _validate_status(status, STUDENT_STATUSES)
        if notes is not None:
            changes["notes"] = notes
        if not changes:
            return False
        updated = self._store.update_local(STUDENT_ATTENDANCE.name, _require(record_id, "record_id"), changes)
        if not updated:
            raise ValidationError(f"No existe la marca de asistencia {record_id}.")
        return True

    def check_in_teacher(
        self,
        owner_id: str,
        teacher_id: str,
        date: str,
        check_in: str,
        status: str = "present",
        *,
        latitude: float | None = None,
        longitude: float | None = None,
        notes: str | None = None,
    ) -> str:
        values: dict[str, Any] = {
            "teacher_id": _require(teacher_id, "teacher_id"),
            "date": _validate_date(date),
            "check_in": _require(check_in, "check_in"),
            "status": _validate_status(status, TEACHER_STATUSES),
            "notes": notes,
            "latitude": latitude,
            "longitude": longitude,
        }
        record_id = self._store.insert_local(TEACHER_ATTENDANCE.name, values, owner_id=_require(owner_id, "owner_id"))
        logger.info("teacher_checked_in id=%s", record_id)
        return record_id

    def check_out_teacher(self, record_id: str, check_out: str) -> bool:
        updated = self._store.update_local(
            TEACHER_ATTENDANCE.name,
            _require(record_id, "record_id"),
            {"check_out": _require(check_out, "check_out")},
        )
        if not updated:
            raise ValidationError(f"No existe el fichaje {record_id}.")
        return True

    def get_class_attendance(self, class_id: str, date: str) -> list[StudentAttendance]:
        rows = self._store.select(
            STUDENT_ATTENDANCE.name,
            "class_id = ? AND date = ?",
            (class_id, _validate_date(date)),
        )
        return [StudentAttendance.from_row(row) for row in rows]

    def get_teacher_attendance(self, teacher_id: str, date: str) -> list[TeacherAttendance]:
        rows = self._store.select(
            TEACHER_ATTENDANCE.name,
            "teacher_id = ? AND date = ?",
            (teacher_id, _validate_date(date)),
        )
        return [TeacherAttendance.from_row(row) for row in rows]

    def get_teacher_classes(self, teacher_id: str) -> list[dict[str, Any]]:
        with self._store.reading("get_teacher_classes") as connection:
            rows = connection.execute(
                f"""
                SELECT c.*, a.is_primary_teacher
                FROM {ASSIGNMENTS.name} a
                JOIN classes c ON c.id = a.class_id
                WHERE a.teacher_id = ?
                  AND (a.is_active IS NULL OR a.is_active = 1)
                ORDER BY c.name
                """,
                (teacher_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_class_students(self, class_id: str) -> list[dict[str, Any]]:
        return self._store.select(
            STUDENTS.name,
            "class_id = ? AND (is_active IS NULL OR is_active = 1)",
            (class_id,),
            order_by="last_name, first_name",
        )
