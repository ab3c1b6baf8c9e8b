from __future__ import annotations


class AppError(Exception):
    pass


class BusinessError(AppError):
    pass


class ValidationError(BusinessError):
    pass


class IdentityConflictError(BusinessError):
    """El almacén local contiene datos de otra identidad y nadie decidió qué hacer."""

    def __init__(self, existing_identity_label: str) -> None:
        super().__init__(f"Hay datos locales de otra identidad: {existing_identity_label}")
        self.existing_identity_label = existing_identity_label


class InfraError(AppError):
    pass


class PersistenceError(InfraError):
    pass


class LocalStoreError(PersistenceError):
    pass


class SchemaNotReadyError(InfraError):
    pass


class ExternalServiceError(InfraError):
    pass


class RemoteRejectedError(ExternalServiceError):
    """Rechazo 4xx del servicio remoto. No se reintenta automáticamente."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientExternalError(ExternalServiceError):
    pass


class RemoteUnavailableError(TransientExternalError):
    """Fallo 5xx, timeout o red. La fila sigue sucia y se reintenta en el próximo intento."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkUnavailableError(RemoteUnavailableError):
    pass


def user_message(error: BaseException) -> str:
    """Mensaje de una línea apto para la UI; nunca incluye payloads crudos."""
    if isinstance(error, NetworkUnavailableError):
        return "Sin conexión. Los cambios quedan guardados en el dispositivo."
    if isinstance(error, RemoteRejectedError):
        return f"El servidor rechazó el registro: {_first_line(str(error))}"
    if isinstance(error, RemoteUnavailableError):
        return "El servidor no está disponible. Se reintentará más tarde."
    if isinstance(error, SchemaNotReadyError):
        return "La base de datos local tiene migraciones pendientes."
    if isinstance(error, LocalStoreError):
        return "Error en la base de datos local. La sincronización se canceló."
    if isinstance(error, IdentityConflictError):
        return str(error)
    if isinstance(error, ValidationError):
        return _first_line(str(error))
    return "Error inesperado durante la sincronización."


def _first_line(text: str) -> str:
    stripped = text.strip()
    if not stripped:
        return "sin detalle"
    return stripped.splitlines()[0][:200]
