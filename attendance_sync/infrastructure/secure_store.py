from __future__ import annotations

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATION_VERSION_KEY = "db_migration_version"


class FileSecureValueStore:
    """Almacén clave/valor pequeño en un JSON con permisos sólo para el propietario."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def get(self, key: str) -> str | None:
        payload = self._read()
        value = payload.get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        payload = self._read()
        payload[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        try:
            os.chmod(tmp_path, 0o600)
        except OSError:
            logger.debug("secure_store_chmod_skipped", exc_info=True)
        tmp_path.replace(self._path)

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("No se pudo leer el almacén seguro %s", self._path.name)
            return {}
        return payload if isinstance(payload, dict) else {}
