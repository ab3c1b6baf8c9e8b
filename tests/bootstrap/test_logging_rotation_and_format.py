from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler

from attendance_sync.bootstrap.logging import (
    CRASH_LOG_NAME,
    MAIN_LOG_NAME,
    OPERATIONAL_ERROR_LOG_NAME,
    LevelOnlyFilter,
    configure_logging,
    log_operational_error,
)
from attendance_sync.core.observability import OperationContext

MIN_FIELDS = {"timestamp", "level", "logger", "funcion", "mensaje", "correlation_id"}


def _read_events(path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_logging_writes_jsonl_with_minimum_fields(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    logger = logging.getLogger("tests.rotation")
    logger.info("primer evento")
    logger.info("segundo evento", extra={"correlation_id": "cid-001", "extra": {"k": "v"}})

    events = _read_events(tmp_path / MAIN_LOG_NAME)
    assert events
    for event in events:
        assert MIN_FIELDS.issubset(event.keys())
    assert events[-1]["correlation_id"] == "cid-001"
    assert events[-1]["extra"]["k"] == "v"


def test_events_carry_trigger_of_active_operation(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    with OperationContext("sync", trigger="connectivity") as context:
        logging.getLogger("tests.rotation").info("dentro de la sync")

    event = _read_events(tmp_path / MAIN_LOG_NAME)[-1]
    assert event["trigger"] == "connectivity"
    assert event["correlation_id"] == context.correlation_id


def test_logging_rotation_creates_backup_files(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=200, backup_count=3)
    logger = logging.getLogger("tests.rotation")

    for index in range(40):
        logger.info("evento-%s %s", index, "x" * 120)

    assert sorted(tmp_path.glob(f"{MAIN_LOG_NAME}.*"))


def test_operational_error_handler_exists_with_error_level(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
    operational_handler = next(h for h in handlers if h.baseFilename.endswith(OPERATIONAL_ERROR_LOG_NAME))

    assert operational_handler.level == logging.ERROR
    assert any(isinstance(filter_, LevelOnlyFilter) for filter_ in operational_handler.filters)


def test_log_operational_error_writes_exception_and_extra(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.error_operativo")

    try:
        raise RuntimeError("database is locked")
    except RuntimeError as exc:
        log_operational_error(logger, "remote_request_failed", exc=exc, extra={"operation": "get_classes"})

    event = _read_events(tmp_path / OPERATIONAL_ERROR_LOG_NAME)[-1]
    assert event["level"] == "ERROR"
    assert event["extra"] == {"operation": "get_classes"}
    assert "RuntimeError: database is locked" in event["exc_info"]


def test_critical_goes_to_crash_log_and_not_to_operational_error(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.crash")

    try:
        raise ValueError("fallo crítico")
    except ValueError:
        logger.critical("error crítico no controlado", exc_info=True)

    crash_event = _read_events(tmp_path / CRASH_LOG_NAME)[-1]
    assert crash_event["level"] == "CRITICAL"
    assert "ValueError: fallo crítico" in crash_event["exc_info"]
    assert not (tmp_path / OPERATIONAL_ERROR_LOG_NAME).read_text(encoding="utf-8").strip()


def test_bearer_tokens_never_reach_log_files(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    logging.getLogger("tests.secrets").info("headers %s", {"Authorization": "Bearer abcdefghijk123456"})

    content = (tmp_path / MAIN_LOG_NAME).read_text(encoding="utf-8")
    assert "abcdefghijk123456" not in content
    assert "<REDACTED>" in content
