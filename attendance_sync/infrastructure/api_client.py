from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import requests

from attendance_sync.bootstrap.logging import log_operational_error
from attendance_sync.core.errors import RemoteRejectedError, RemoteUnavailableError
from attendance_sync.core.observability import get_correlation_id
from attendance_sync.domain.ports import AssignmentsPayload, RemoteAttendanceApi, TokenProvider
from attendance_sync.infrastructure.api_client_puros import (
    calcular_backoff_lectura,
    extraer_asignaciones,
    normalizar_lista,
    normalizar_lista_posicional,
    normalizar_registro,
    unir_ids,
    unir_url,
)
from attendance_sync.infrastructure.api_errors import map_requests_exception

logger = logging.getLogger(__name__)

_MAX_READ_RETRIES = 3
_BASE_BACKOFF_SECONDS = 1.0
DEFAULT_TIMEOUT_SECONDS = 10.0

T = TypeVar("T")


class AttendanceApiClient(RemoteAttendanceApi):
    """Cliente HTTP del servicio de asistencia.

    Las lecturas (GET) se reintentan con backoff exponencial ante 5xx, 429 o fallos
    de red. Las escrituras nunca se reintentan: un POST repetido podría duplicar el
    registro en el servidor.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._sleeper = sleeper

    def get_assignments(self, identity_id: str) -> AssignmentsPayload:
        payload = self._get("get_assignments", "/teacher-class", params={"teacherId": identity_id})
        assignments, identity = extraer_asignaciones(payload)
        return AssignmentsPayload(assignments=assignments, identity=identity)

    def get_classes(self, ids: list[str]) -> list[dict[str, Any]]:
        if not ids:
            return []
        return normalizar_lista(self._get("get_classes", "/classes", params={"ids": unir_ids(ids)}))

    def get_students_by_class(self, class_ids: list[str]) -> list[dict[str, Any]]:
        if not class_ids:
            return []
        return normalizar_lista(
            self._get("get_students_by_class", "/students", params={"classIds": unir_ids(class_ids)})
        )

    def get_subjects(self) -> list[dict[str, Any]]:
        return normalizar_lista(self._get("get_subjects", "/subjects"))

    def create_teacher_attendance(self, record: dict[str, Any]) -> dict[str, Any]:
        return normalizar_registro(self._write("create_teacher_attendance", "POST", "/teacher-attendance", record))

    def update_teacher_attendance(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        return normalizar_registro(
            self._write("update_teacher_attendance", "PUT", f"/teacher-attendance/{record_id}", patch)
        )

    def create_student_attendance(self, record: dict[str, Any]) -> dict[str, Any]:
        return normalizar_registro(self._write("create_student_attendance", "POST", "/student-attendance", record))

    def update_student_attendance(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        return normalizar_registro(
            self._write("update_student_attendance", "PUT", f"/student-attendance/{record_id}", patch)
        )

    def bulk_upload_teacher_attendance(self, records: list[dict[str, Any]]) -> list[dict[str, Any] | None]:
        return normalizar_lista_posicional(
            self._write("bulk_upload_teacher_attendance", "POST", "/teacher-attendance/bulk", {"records": records})
        )

    def bulk_upload_student_attendance(self, records: list[dict[str, Any]]) -> list[dict[str, Any] | None]:
        return normalizar_lista_posicional(
            self._write("bulk_upload_student_attendance", "POST", "/student-attendance/bulk", {"records": records})
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-Id"] = correlation_id
        return headers

    def _get(self, operation_name: str, path: str, *, params: dict[str, str] | None = None) -> Any:
        def _request() -> Any:
            response = self._session.get(
                unir_url(self._base_url, path),
                params=params,
                headers=self._headers(),
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
            return response.json()

        return self._with_read_retry(operation_name, _request)

    def _write(self, operation_name: str, method: str, path: str, body: dict[str, Any]) -> Any:
        try:
            response = self._session.request(
                method,
                unir_url(self._base_url, path),
                json=body,
                headers=self._headers(),
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            mapped_error = map_requests_exception(exc, operation=operation_name)
            self._log_remote_error(operation_name, mapped_error)
            raise mapped_error from exc

    def _with_read_retry(self, operation_name: str, operation: Callable[[], T]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation()
            except (requests.RequestException, ValueError) as exc:
                mapped_error = map_requests_exception(exc, operation=operation_name)
                if not isinstance(mapped_error, RemoteUnavailableError) or attempt > _MAX_READ_RETRIES:
                    self._log_remote_error(operation_name, mapped_error, attempts=attempt)
                    raise mapped_error from exc
                backoff_seconds = calcular_backoff_lectura(attempt, _BASE_BACKOFF_SECONDS)
                logger.warning(
                    "Servicio remoto no disponible (%s). intento=%s/%s backoff=%.3fs",
                    operation_name,
                    attempt,
                    _MAX_READ_RETRIES + 1,
                    backoff_seconds,
                )
                self._sleeper(backoff_seconds)

    def _log_remote_error(self, operation_name: str, error: Exception, *, attempts: int = 1) -> None:
        extra = {
            "operation": operation_name,
            "attempts": attempts,
            "status_code": getattr(error, "status_code", None),
        }
        if isinstance(error, RemoteRejectedError):
            logger.warning("remote_rejected %s: %s", operation_name, error, extra={"extra": extra})
            return
        log_operational_error(logger, f"remote_unavailable {operation_name}", exc=error, extra=extra)
