from __future__ import annotations

import logging
from typing import Any, Callable

from attendance_sync.core.errors import RemoteRejectedError, RemoteUnavailableError
from attendance_sync.core.observability import log_event
from attendance_sync.domain.local_ids import is_local_id
from attendance_sync.domain.ports import RemoteAttendanceApi
from attendance_sync.domain.sync_models import PushError, PushResult
from attendance_sync.domain.tables import ATTENDANCE_TABLES, STUDENT_ATTENDANCE, TEACHER_ATTENDANCE, TableSpec, table_spec
from attendance_sync.infrastructure.dirty_tracker import DirtyTracker
from attendance_sync.infrastructure.sync_status_ledger import SyncStatusLedger

logger = logging.getLogger(__name__)

CREATE_FIELDS: dict[str, tuple[str, ...]] = {
    TEACHER_ATTENDANCE.name: ("teacher_id", "date", "check_in", "check_out", "status", "notes", "latitude", "longitude"),
    STUDENT_ATTENDANCE.name: ("student_id", "class_id", "teacher_attendance_id", "date", "status", "notes", "marked_by"),
}
UPDATE_FIELDS: dict[str, tuple[str, ...]] = {
    TEACHER_ATTENDANCE.name: ("check_in", "check_out", "status", "notes"),
    STUDENT_ATTENDANCE.name: ("status", "notes"),
}


def build_payload(spec: TableSpec, row: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {spec.json_key(column): row.get(column) for column in fields}


def pending_local_references(spec: TableSpec, row: dict[str, Any]) -> list[str]:
    """Columnas FK que todavía apuntan a un id temporal de otra tabla."""
    return [column for column in spec.references if is_local_id(row.get(column))]


class _RowFailure(Exception):
    def __init__(self, message: str, *, retryable: bool) -> None:
        super().__init__(message)
        self.retryable = retryable


class PushSynchronizer:
    """Envía las filas de asistencia sucias al servidor.

    Un id temporal significa "nunca enviado" y va por create; cualquier otro id va
    por update. El id se reescribe nada más confirmar el create, así que repetir el
    push de la misma fila nunca duplica el registro remoto.
    """

    def __init__(self, tracker: DirtyTracker, api: RemoteAttendanceApi, ledger: SyncStatusLedger) -> None:
        self._tracker = tracker
        self._api = api
        self._ledger = ledger

    def push(self) -> PushResult:
        synced_count = 0
        errors: list[PushError] = []
        for spec in ATTENDANCE_TABLES:
            table_result = self._push_table(spec)
            synced_count += table_result.synced_count
            errors.extend(table_result.errors)
        return PushResult(synced_count=synced_count, errors=tuple(errors))

    def bulk_push(self, table: str) -> PushResult:
        """Reenvía todas las filas sucias de una tabla en una sola llamada ``bulk``."""
        spec = self._attendance_spec(table)
        rows = self._tracker.list_dirty(spec.name)
        errors: list[PushError] = []
        sendable: list[dict[str, Any]] = []
        for row in rows:
            blocked = pending_local_references(spec, row)
            if blocked:
                errors.append(self._blocked_error(spec, row, blocked))
            else:
                sendable.append(row)

        synced_count = 0
        if sendable:
            payloads = []
            for row in sendable:
                payload = build_payload(spec, row, CREATE_FIELDS[spec.name])
                if not is_local_id(row["id"]):
                    payload["id"] = row["id"]
                payloads.append(payload)
            try:
                returned = self._bulk_call(spec)(payloads)
            except (RemoteRejectedError, RemoteUnavailableError) as exc:
                retryable = isinstance(exc, RemoteUnavailableError)
                errors.extend(PushError(spec.name, row["id"], str(exc), retryable) for row in sendable)
                returned = []
            else:
                for index, row in enumerate(sendable):
                    item = returned[index] if index < len(returned) else None
                    server_id = item.get("id") if isinstance(item, dict) else None
                    if not server_id:
                        errors.append(
                            PushError(spec.name, row["id"], "El servidor no devolvió id para el registro", True)
                        )
                        continue
                    self._confirm(spec, row, str(server_id))
                    synced_count += 1

        result = PushResult(synced_count=synced_count, errors=tuple(errors))
        self._record(spec, result, attempted=len(rows))
        log_event(
            logger,
            "bulk_push_completed",
            {"table": spec.name, "synced": synced_count, "errors": len(errors), "rows": len(rows)},
        )
        return result

    def _push_table(self, spec: TableSpec) -> PushResult:
        rows = self._tracker.list_dirty(spec.name)
        synced_count = 0
        errors: list[PushError] = []
        for row in rows:
            try:
                self._push_row(spec, row)
            except _RowFailure as failure:
                errors.append(PushError(spec.name, row["id"], str(failure), failure.retryable))
                logger.warning("push_row_failed table=%s id=%s error=%s", spec.name, row["id"], failure)
                continue
            synced_count += 1

        result = PushResult(synced_count=synced_count, errors=tuple(errors))
        self._record(spec, result, attempted=len(rows))
        log_event(
            logger,
            "push_table_completed",
            {"table": spec.name, "synced": synced_count, "errors": len(errors), "rows": len(rows)},
        )
        return result

    def _push_row(self, spec: TableSpec, row: dict[str, Any]) -> None:
        blocked = pending_local_references(spec, row)
        if blocked:
            error = self._blocked_error(spec, row, blocked)
            raise _RowFailure(error.message, retryable=True)

        record_id = row["id"]
        try:
            if is_local_id(record_id):
                response = self._create_call(spec)(build_payload(spec, row, CREATE_FIELDS[spec.name]))
                server_id = response.get("id")
                if not server_id:
                    raise RemoteRejectedError("El servidor aceptó el registro pero no devolvió id")
                self._confirm(spec, row, str(server_id))
            else:
                self._update_call(spec)(record_id, build_payload(spec, row, UPDATE_FIELDS[spec.name]))
                self._confirm(spec, row, None)
        except RemoteRejectedError as exc:
            raise _RowFailure(str(exc), retryable=False) from exc
        except RemoteUnavailableError as exc:
            raise _RowFailure(str(exc), retryable=True) from exc

    def _confirm(self, spec: TableSpec, row: dict[str, Any], server_id: str | None) -> None:
        new_id = server_id if server_id and server_id != row["id"] else None
        self._tracker.clear_dirty(spec.name, row["id"], new_id, expected_updated_at=row["updated_at"])

    def _record(self, spec: TableSpec, result: PushResult, *, attempted: int) -> None:
        first_error = result.errors[0].message if result.errors else None
        if attempted and result.synced_count == 0 and first_error:
            self._ledger.record_failure(spec.name, first_error)
            return
        self._ledger.record_success(spec.name, synced_count=result.synced_count, error=first_error)

    @staticmethod
    def _blocked_error(spec: TableSpec, row: dict[str, Any], columns: list[str]) -> PushError:
        detail = ", ".join(f"{column}={row.get(column)}" for column in columns)
        return PushError(spec.name, row["id"], f"Referencia pendiente de sincronizar ({detail})", True)

    @staticmethod
    def _attendance_spec(table: str) -> TableSpec:
        spec = table_spec(table)
        if spec not in ATTENDANCE_TABLES:
            raise ValueError(f"La tabla {table} no admite push")
        return spec

    def _create_call(self, spec: TableSpec) -> Callable[[dict[str, Any]], dict[str, Any]]:
        if spec is TEACHER_ATTENDANCE:
            return self._api.create_teacher_attendance
        return self._api.create_student_attendance

    def _update_call(self, spec: TableSpec) -> Callable[[str, dict[str, Any]], dict[str, Any]]:
        if spec is TEACHER_ATTENDANCE:
            return self._api.update_teacher_attendance
        return self._api.update_student_attendance

    def _bulk_call(self, spec: TableSpec) -> Callable[[list[dict[str, Any]]], list[dict[str, Any] | None]]:
        if spec is TEACHER_ATTENDANCE:
            return self._api.bulk_upload_teacher_attendance
        return self._api.bulk_upload_student_attendance
