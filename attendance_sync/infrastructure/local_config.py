from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from attendance_sync.bootstrap.settings import API_URL_ENV, resolve_data_dir
from attendance_sync.domain.models import SyncConfig

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "http://localhost:3000/api"


class SyncConfigStore:
    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_data_dir()
        self._config_path = self._base_dir / "config.json"

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> SyncConfig:
        payload = self._read_payload()
        device_id = str(payload.get("device_id", "")).strip()
        if not device_id:
            device_id = self._generate_device_id()
            payload["device_id"] = device_id
            self._write_payload(payload)
        api_base_url = os.environ.get(API_URL_ENV) or str(payload.get("api_base_url") or DEFAULT_API_BASE_URL)
        defaults = SyncConfig(api_base_url=api_base_url, device_id=device_id)
        return SyncConfig(
            api_base_url=api_base_url.rstrip("/"),
            device_id=device_id,
            request_timeout_seconds=_as_number(
                payload.get("request_timeout_seconds"), defaults.request_timeout_seconds, float
            ),
            staleness_window_seconds=_as_number(
                payload.get("staleness_window_seconds"), defaults.staleness_window_seconds, int
            ),
            sync_interval_seconds=_as_number(payload.get("sync_interval_seconds"), defaults.sync_interval_seconds, int),
        )

    def save(self, config: SyncConfig) -> SyncConfig:
        payload = {
            "api_base_url": config.api_base_url,
            "request_timeout_seconds": config.request_timeout_seconds,
            "staleness_window_seconds": config.staleness_window_seconds,
            "sync_interval_seconds": config.sync_interval_seconds,
            "device_id": config.device_id or self._generate_device_id(),
        }
        self._write_payload(payload)
        return SyncConfig(**payload)

    def _read_payload(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("No se pudo leer config.json: %s", exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write_payload(self, payload: dict[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return str(uuid.uuid4())


def _as_number(value: Any, default: Any, cast: type) -> Any:
    if value in (None, ""):
        return default
    try:
        parsed = cast(value)
    except (TypeError, ValueError):
        logger.warning("config_value_invalid value=%r default=%r", value, default)
        return default
    return parsed if parsed > 0 else default
