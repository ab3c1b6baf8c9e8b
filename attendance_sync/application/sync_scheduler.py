from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable

from attendance_sync.application.sync import ConflictDecider, SyncRunner
from attendance_sync.domain.ports import ConnectivityObserver
from attendance_sync.domain.sync_models import SchedulerState, SyncResult, SyncTrigger

logger = logging.getLogger(__name__)

IdentityProvider = Callable[[], "str | None"]
ResultListener = Callable[[SyncResult], None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SyncScheduler:
    """Serializa los intentos de sync detrás de un único lock no bloqueante.

    Un disparo que llega con una sync en curso se descarta (no se encola) y
    devuelve un resultado ``already_running``.
    """

    def __init__(
        self,
        runner: SyncRunner,
        connectivity: ConnectivityObserver,
        identity_provider: IdentityProvider,
        *,
        interval_seconds: float = 900,
        connectivity_poll_seconds: float = 5.0,
        conflict_decider: ConflictDecider | None = None,
    ) -> None:
        self._runner = runner
        self._connectivity = connectivity
        self._identity_provider = identity_provider
        self._interval_seconds = interval_seconds
        self._connectivity_poll_seconds = connectivity_poll_seconds
        self._conflict_decider = conflict_decider
        self._sync_lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._last_result: SyncResult | None = None
        self._last_online: bool | None = None
        self._listeners: list[ResultListener] = []
        self._stop_event = threading.Event()
        self._interval_thread: threading.Thread | None = None
        self._connectivity_thread: threading.Thread | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    def add_listener(self, listener: ResultListener) -> None:
        self._listeners.append(listener)

    def request_sync(self, trigger: SyncTrigger = "manual") -> SyncResult:
        return self._run_exclusive(trigger, lambda: self._sync_current_identity(trigger))

    def request_bulk_push(self, table: str, trigger: SyncTrigger = "manual") -> SyncResult:
        """Reenvío en bloque de una tabla bajo el mismo lock que las syncs."""
        return self._run_exclusive(trigger, lambda: self._runner.run_bulk_push(table, trigger))

    def _run_exclusive(self, trigger: str, operation: Callable[[], SyncResult]) -> SyncResult:
        if not self._sync_lock.acquire(blocking=False):
            logger.info("sync_trigger_dropped trigger=%s", trigger)
            return SyncResult(
                status="already_running",
                message="Ya hay una sincronización en curso.",
                trigger=trigger,
                started_at=_now_iso(),
                finished_at=_now_iso(),
            )
        try:
            self._state = SchedulerState.SYNCING
            result = operation()
            self._last_result = result
        finally:
            self._state = SchedulerState.IDLE
            self._sync_lock.release()
        self._notify(result)
        return result

    def _sync_current_identity(self, trigger: SyncTrigger) -> SyncResult:
        identity_id = self._identity_provider()
        if not identity_id:
            return SyncResult(
                status="skipped",
                message="No hay una sesión iniciada.",
                trigger=trigger,
                started_at=_now_iso(),
                finished_at=_now_iso(),
            )
        return self._runner.run_once(identity_id, trigger, conflict_decider=self._conflict_decider)

    def on_app_start(self) -> SyncResult:
        self._last_online = self._connectivity.is_online()
        return self.request_sync("app_start")

    def on_connectivity_changed(self, online: bool) -> SyncResult | None:
        previous = self._last_online
        if online and previous is False:
            result = self.request_sync("connectivity")
            # Descartado por una sync en curso: se reintenta en el siguiente sondeo.
            if result.status != "already_running":
                self._last_online = True
            return result
        self._last_online = online
        return None

    def start(self) -> None:
        if self._interval_thread is not None:
            return
        self._stop_event.clear()
        self._unsubscribe = self._connectivity.subscribe(self.on_connectivity_changed)
        self._interval_thread = threading.Thread(target=self._interval_loop, name="sync-interval", daemon=True)
        self._interval_thread.start()
        self._connectivity_thread = threading.Thread(
            target=self._connectivity_loop, name="sync-connectivity", daemon=True
        )
        self._connectivity_thread.start()
        logger.info(
            "sync_scheduler_started interval_seconds=%s connectivity_poll_seconds=%s",
            self._interval_seconds,
            self._connectivity_poll_seconds,
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._interval_thread is not None:
            self._interval_thread.join(timeout)
            self._interval_thread = None
        if self._connectivity_thread is not None:
            self._connectivity_thread.join(timeout)
            self._connectivity_thread = None
        logger.info("sync_scheduler_stopped")

    def _interval_loop(self) -> None:
        while not self._stop_event.wait(self._interval_seconds):
            try:
                self.request_sync("interval")
            except Exception:  # noqa: BLE001
                logger.exception("interval_sync_failed")

    def _connectivity_loop(self) -> None:
        while not self._stop_event.wait(self._connectivity_poll_seconds):
            try:
                online = self._connectivity.poll()
                # Los suscriptores ya se enteraron del cambio; esto recoge lo que quedó pendiente.
                if online != self._last_online:
                    self.on_connectivity_changed(online)
            except Exception:  # noqa: BLE001
                logger.exception("connectivity_poll_failed")

    def _notify(self, result: SyncResult) -> None:
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:  # noqa: BLE001
                logger.exception("sync_result_listener_failed")
