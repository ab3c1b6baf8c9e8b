from __future__ import annotations

import os
import tempfile
from pathlib import Path

APP_DIR_NAME = "AttendanceSync"
LOG_DIR_ENV = "ATTENDANCE_SYNC_LOG_DIR"
DATA_DIR_ENV = "ATTENDANCE_SYNC_DATA_DIR"
API_URL_ENV = "ATTENDANCE_SYNC_API_URL"


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_data_dir() -> Path:
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    local_appdata = os.environ.get("LOCALAPPDATA")
    if local_appdata:
        return Path(local_appdata) / APP_DIR_NAME
    return Path.home() / ".local" / "share" / APP_DIR_NAME


def _is_writable_dir(candidate: Path) -> bool:
    try:
        candidate.mkdir(parents=True, exist_ok=True)
        test_file = candidate / "_write_test.tmp"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        return False


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get(LOG_DIR_ENV)
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(resolve_data_dir() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / APP_DIR_NAME / "logs")

    for candidate in candidates:
        if _is_writable_dir(candidate):
            return candidate

    fallback = project_root() / "logs"
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


TOKEN_ENV = "ATTENDANCE_SYNC_TOKEN"
SECURE_VALUES_FILENAME = "secure_values.json"
SYNC_AUDIT_LOG_NAME = "sync_audit.jsonl"
