from __future__ import annotations

from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
import uuid
from typing import Any

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_SYNC_TRIGGER: ContextVar[str | None] = ContextVar("sync_trigger", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def get_sync_trigger() -> str | None:
    return _SYNC_TRIGGER.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


class OperationContext(AbstractContextManager["OperationContext"]):
    """Asocia un correlation_id (y el disparador de sync) a todo lo que se loguee dentro."""

    def __init__(self, operation_name: str, *, trigger: str | None = None) -> None:
        self.operation_name = operation_name
        self.trigger = trigger
        self.correlation_id = generate_correlation_id()
        self._correlation_token: Token[str | None] | None = None
        self._trigger_token: Token[str | None] | None = None

    def __enter__(self) -> "OperationContext":
        self._correlation_token = _CORRELATION_ID.set(self.correlation_id)
        self._trigger_token = _SYNC_TRIGGER.set(self.trigger)
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        if self._trigger_token is not None:
            _SYNC_TRIGGER.reset(self._trigger_token)
        if self._correlation_token is not None:
            _CORRELATION_ID.reset(self._correlation_token)
        return None


def log_event(logger: Any, event_name: str, payload: dict[str, Any], correlation_id: str | None = None) -> dict[str, Any]:
    resolved_id = correlation_id or get_correlation_id()
    event = {
        "event": event_name,
        "correlation_id": resolved_id,
        "trigger": get_sync_trigger(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    logger.info(
        event_name,
        extra={
            "correlation_id": resolved_id,
            "extra": event,
        },
    )
    return event
