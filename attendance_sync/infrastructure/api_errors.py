from __future__ import annotations

from typing import Any

import requests

from attendance_sync.core.errors import RemoteRejectedError, RemoteUnavailableError

RETRYABLE_STATUS_CODES = frozenset({429})


def is_retryable_status(status_code: int | None) -> bool:
    if status_code is None:
        return True
    return status_code >= 500 or status_code in RETRYABLE_STATUS_CODES


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def extract_server_message(response: requests.Response | None) -> str | None:
    if response is None:
        return None
    try:
        body: Any = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:200] or None
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def classify_http_error(status_code: int, server_message: str | None, *, operation: str) -> Exception:
    detail = server_message or f"HTTP {status_code}"
    if is_retryable_status(status_code):
        return RemoteUnavailableError(f"{operation}: servicio no disponible ({detail})", status_code=status_code)
    return RemoteRejectedError(f"{operation}: {detail}", status_code=status_code)


def map_requests_exception(ex: Exception, *, operation: str) -> Exception:
    if isinstance(ex, (RemoteRejectedError, RemoteUnavailableError)):
        return ex
    if isinstance(ex, requests.HTTPError):
        response = ex.response
        status_code = extract_response_status_code(ex)
        if status_code is None:
            return RemoteUnavailableError(f"{operation}: {ex}")
        return classify_http_error(status_code, extract_server_message(response), operation=operation)
    if isinstance(ex, requests.Timeout):
        return RemoteUnavailableError(f"{operation}: tiempo de espera agotado")
    if isinstance(ex, requests.ConnectionError):
        return RemoteUnavailableError(f"{operation}: sin conexión con el servidor")
    if isinstance(ex, ValueError):
        return RemoteRejectedError(f"{operation}: respuesta JSON inválida")
    return RemoteUnavailableError(f"{operation}: {ex}")
