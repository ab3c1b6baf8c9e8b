from __future__ import annotations

import logging

from attendance_sync.core.errors import SchemaNotReadyError
from attendance_sync.domain.ports import SecureValueStore
from attendance_sync.infrastructure.secure_store import MIGRATION_VERSION_KEY

logger = logging.getLogger(__name__)


class SchemaVersionGate:
    """Bloquea la sincronización mientras la base local no esté en la versión esperada."""

    def __init__(self, store: SecureValueStore, expected_version: int) -> None:
        self._store = store
        self._expected_version = expected_version

    def current_version(self) -> int | None:
        raw = self._store.get(MIGRATION_VERSION_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("schema_version_unreadable value=%r", raw)
            return None

    def ensure_ready(self) -> None:
        current = self.current_version()
        if current != self._expected_version:
            raise SchemaNotReadyError(
                f"Versión de esquema {current} distinta de la esperada {self._expected_version}"
            )
