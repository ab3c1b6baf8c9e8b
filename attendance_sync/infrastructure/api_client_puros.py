from __future__ import annotations

from typing import Any, Iterable


def desenvolver_data(payload: Any) -> Any:
    """Quita el sobre ``{"data": ...}`` cuando el servidor lo envía."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def normalizar_lista(payload: Any) -> list[dict[str, Any]]:
    datos = desenvolver_data(payload)
    if not isinstance(datos, list):
        return []
    return [item for item in datos if isinstance(item, dict)]


def normalizar_lista_posicional(payload: Any) -> list[dict[str, Any] | None]:
    """Como ``normalizar_lista`` pero conserva las posiciones: lo que no es dict queda en ``None``."""
    datos = desenvolver_data(payload)
    if not isinstance(datos, list):
        return []
    return [item if isinstance(item, dict) else None for item in datos]


def normalizar_registro(payload: Any) -> dict[str, Any]:
    datos = desenvolver_data(payload)
    return datos if isinstance(datos, dict) else {}


def extraer_asignaciones(payload: Any) -> tuple[list[dict[str, Any]], dict[str, Any] | None]:
    """Devuelve (asignaciones, identidad) de la respuesta de ``/teacher-class``.

    El servidor puede responder con una lista plana o con un objeto que incluye
    ``assignments`` y ``teacher``.
    """
    datos = desenvolver_data(payload)
    if isinstance(datos, list):
        return normalizar_lista(datos), None
    if not isinstance(datos, dict):
        return [], None
    asignaciones = normalizar_lista(datos.get("assignments", []))
    identidad = datos.get("teacher")
    return asignaciones, identidad if isinstance(identidad, dict) else None


def unir_ids(ids: Iterable[str]) -> str:
    vistos: list[str] = []
    for value in ids:
        texto = str(value).strip()
        if texto and texto not in vistos:
            vistos.append(texto)
    return ",".join(vistos)


def calcular_backoff_lectura(intento: int, base_segundos: float = 1.0) -> float:
    return base_segundos * (2 ** (intento - 1))


def unir_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
