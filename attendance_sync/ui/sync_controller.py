from __future__ import annotations

import logging
import traceback
from typing import Callable

from PySide6.QtCore import QObject, QThread, QTimer, Signal, Slot

from attendance_sync.application.sync_scheduler import SyncScheduler
from attendance_sync.application.sync_status import SyncStatusService
from attendance_sync.bootstrap.logging import log_operational_error
from attendance_sync.core.observability import OperationContext, log_event
from attendance_sync.domain.sync_models import SyncResult

logger = logging.getLogger(__name__)


class _SyncWorker(QObject):
    finished = Signal(object)
    failed = Signal(object)

    def __init__(self, operation: Callable[[], SyncResult], correlation_id: str, trigger: str) -> None:
        super().__init__()
        self._operation = operation
        self._correlation_id = correlation_id
        self._trigger = trigger

    @Slot()
    def run(self) -> None:
        try:
            result = self._operation()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "ui_sync_failed", {"trigger": self._trigger, "error": str(exc)}, self._correlation_id)
            log_operational_error(
                logger,
                "Sync failed",
                exc=exc,
                extra={"trigger": self._trigger, "correlation_id": self._correlation_id},
            )
            self.failed.emit({"error": exc, "details": traceback.format_exc()})
            return
        self.finished.emit(result)


class SyncController(QObject):
    """Puente Qt del planificador: ejecuta la sync fuera del hilo de UI y publica señales."""

    sync_finished = Signal(object)
    sync_failed = Signal(object)
    pending_changed = Signal(object)

    def __init__(
        self,
        scheduler: SyncScheduler,
        status_service: SyncStatusService,
        *,
        interval_ms: int | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._scheduler = scheduler
        self._status_service = status_service
        self._thread: QThread | None = None
        self._worker: _SyncWorker | None = None
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._on_interval)
        if interval_ms:
            self._timer.setInterval(interval_ms)

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def start_interval(self, interval_ms: int | None = None) -> None:
        if interval_ms:
            self._timer.setInterval(interval_ms)
        self._timer.start()

    def stop_interval(self) -> None:
        self._timer.stop()

    def request_sync(self, trigger: str = "manual") -> bool:
        if self._thread is not None:
            logger.info("ui_sync_ignored_running trigger=%s", trigger)
            return False
        context = OperationContext("sync_ui", trigger=trigger)
        log_event(logger, "ui_sync_requested", {"trigger": trigger}, context.correlation_id)

        self._thread = QThread()
        self._worker = _SyncWorker(lambda: self._scheduler.request_sync(trigger), context.correlation_id, trigger)
        self._worker.moveToThread(self._thread)
        self._thread.started.connect(self._worker.run)
        self._worker.finished.connect(self._on_worker_finished)
        self._worker.failed.connect(self._on_worker_failed)
        self._worker.finished.connect(self._thread.quit)
        self._worker.failed.connect(self._thread.quit)
        self._thread.finished.connect(self._on_thread_finished)
        self._thread.start()
        return True

    def refresh_pending(self) -> None:
        self.pending_changed.emit(self._status_service.get_pending_sync_count())

    @Slot()
    def _on_interval(self) -> None:
        self.request_sync("interval")

    @Slot(object)
    def _on_worker_finished(self, result: SyncResult) -> None:
        self.sync_finished.emit(result)
        self.refresh_pending()

    @Slot(object)
    def _on_worker_failed(self, payload: object) -> None:
        self.sync_failed.emit(payload)
        self.refresh_pending()

    @Slot()
    def _on_thread_finished(self) -> None:
        if self._worker is not None:
            self._worker.deleteLater()
        if self._thread is not None:
            self._thread.deleteLater()
        self._worker = None
        self._thread = None
