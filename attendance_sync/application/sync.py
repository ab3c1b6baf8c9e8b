from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from attendance_sync.application.conflict_resolver import ConflictResolver
from attendance_sync.application.pull_sync import PullSynchronizer
from attendance_sync.application.push_sync import PushSynchronizer
from attendance_sync.application.version_gate import SchemaVersionGate
from attendance_sync.bootstrap.logging import log_operational_error
from attendance_sync.core.errors import (
    LocalStoreError,
    NetworkUnavailableError,
    RemoteRejectedError,
    RemoteUnavailableError,
    SchemaNotReadyError,
    user_message,
)
from attendance_sync.core.observability import OperationContext, log_event
from attendance_sync.domain.ports import ConnectivityObserver
from attendance_sync.domain.sync_models import (
    ConflictCheck,
    ConflictDecision,
    PullResult,
    PushResult,
    SyncResult,
    SyncStatus,
)
from attendance_sync.domain.tables import ATTENDANCE_TABLES, REFERENCE_DATA_GROUP
from attendance_sync.infrastructure.local_store import LocalStore
from attendance_sync.infrastructure.sync_status_ledger import SyncStatusLedger

logger = logging.getLogger(__name__)

ConflictDecider = Callable[[ConflictCheck], "ConflictDecision | None"]


class StructuredFileLogger:
    """Logger estructurado JSON Lines para auditoría de sync."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, **payload: object) -> None:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event,
            **payload,
        }
        line = json.dumps(record, ensure_ascii=False, default=str)
        with self._lock, self._path.open("a", encoding="utf-8") as file:
            file.write(line + "\n")


def _summary_message(status: SyncStatus, pull: PullResult | None, push: PushResult | None) -> str:
    pushed = push.synced_count if push else 0
    failed = push.error_count if push else 0
    if pull is None:
        pulled_text = "datos de referencia sin actualizar"
    elif pull.skipped:
        pulled_text = "datos de referencia al día"
    else:
        pulled_text = f"{pull.total} datos de referencia actualizados"
    if status == "success":
        return f"Sincronización completada: {pushed} registros enviados, {pulled_text}."
    if status == "partial":
        return f"Sincronización parcial: {pushed} enviados, {failed} pendientes con error, {pulled_text}."
    return f"Sincronización fallida: {failed} registros pendientes con error, {pulled_text}."


class SyncRunner:
    """Un intento completo de reconciliación: versión, conectividad, conflicto, pull y push."""

    def __init__(
        self,
        store: LocalStore,
        ledger: SyncStatusLedger,
        pull: PullSynchronizer,
        push: PushSynchronizer,
        resolver: ConflictResolver,
        connectivity: ConnectivityObserver,
        version_gate: SchemaVersionGate,
        *,
        structured_logger: StructuredFileLogger | None = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._pull = pull
        self._push = push
        self._resolver = resolver
        self._connectivity = connectivity
        self._version_gate = version_gate
        self._structured_logger = structured_logger

    def run_once(
        self,
        identity_id: str,
        trigger: str = "manual",
        *,
        conflict_decider: ConflictDecider | None = None,
    ) -> SyncResult:
        with OperationContext("sync", trigger=trigger) as operation:
            started_at = self._store.now_iso()
            self._log("sync_started", correlation_id=operation.correlation_id, trigger=trigger)
            try:
                result = self._run(identity_id, trigger, started_at, conflict_decider)
            except (LocalStoreError, SchemaNotReadyError) as exc:
                log_operational_error(
                    logger,
                    "sync_attempt_aborted",
                    exc=exc,
                    extra={"trigger": trigger, "identity_id": identity_id},
                )
                result = self._finish("failed", user_message(exc), trigger, started_at, errors=[str(exc)])
            self._log(
                "sync_finished",
                correlation_id=operation.correlation_id,
                status=result.status,
                message=result.message,
                errors=result.errors,
            )
            log_event(logger, "sync_finished", {"status": result.status, "message": result.message})
            return result

    def run_bulk_push(self, table: str, trigger: str = "manual") -> SyncResult:
        """Reenvía en bloque las filas sucias de ``table`` con las mismas comprobaciones previas que ``run_once``."""
        with OperationContext("bulk_push", trigger=trigger) as operation:
            started_at = self._store.now_iso()
            self._log("bulk_push_started", correlation_id=operation.correlation_id, trigger=trigger, table=table)
            try:
                result = self._run_bulk_push(table, trigger, started_at)
            except (LocalStoreError, SchemaNotReadyError) as exc:
                log_operational_error(
                    logger,
                    "bulk_push_aborted",
                    exc=exc,
                    extra={"trigger": trigger, "table": table},
                )
                result = self._finish("failed", user_message(exc), trigger, started_at, errors=[str(exc)])
            self._log(
                "bulk_push_finished",
                correlation_id=operation.correlation_id,
                table=table,
                status=result.status,
                errors=result.errors,
            )
            return result

    def _run_bulk_push(self, table: str, trigger: str, started_at: str) -> SyncResult:
        self._version_gate.ensure_ready()
        if not self._connectivity.is_online():
            error = NetworkUnavailableError("Sin conectividad")
            self._ledger.record_failure(table, str(error))
            logger.info("bulk_push_offline table=%s trigger=%s", table, trigger)
            return self._finish("offline", user_message(error), trigger, started_at, errors=[str(error)])

        push_result = self._push.bulk_push(table)
        if not push_result.errors:
            status: SyncStatus = "success"
        elif push_result.synced_count > 0:
            status = "partial"
        else:
            status = "failed"
        message = (
            f"Reenvío en bloque de {table}: {push_result.synced_count} enviados, "
            f"{push_result.error_count} con error."
        )
        return self._finish(
            status, message, trigger, started_at, push=push_result, errors=push_result.error_messages
        )

    def _run(
        self,
        identity_id: str,
        trigger: str,
        started_at: str,
        conflict_decider: ConflictDecider | None,
    ) -> SyncResult:
        self._version_gate.ensure_ready()

        if not self._connectivity.is_online():
            error = NetworkUnavailableError("Sin conectividad")
            for table in (REFERENCE_DATA_GROUP, *(spec.name for spec in ATTENDANCE_TABLES)):
                self._ledger.record_failure(table, str(error))
            logger.info("sync_offline trigger=%s", trigger)
            return self._finish("offline", user_message(error), trigger, started_at, errors=[str(error)])

        errors: list[str] = []
        pull_result: PullResult | None = None
        pull_done = False

        check = self._resolver.check_conflict(identity_id)
        if check.has_conflict:
            decision = conflict_decider(check) if conflict_decider else None
            log_event(
                logger,
                "identity_conflict_detected",
                {"existing_identity_id": check.existing_identity_id, "decision": decision},
            )
            if decision is None:
                message = f"Hay datos locales de {check.existing_identity_label}. Elige descartarlos o conservarlos."
                return self._finish("conflict", message, trigger, started_at)
            if decision == "discard":
                try:
                    pull_result = self._resolver.discard_and_reload(identity_id)
                except (RemoteUnavailableError, RemoteRejectedError) as exc:
                    errors.append(str(exc))
                    self._ledger.record_failure(REFERENCE_DATA_GROUP, str(exc))
                pull_done = True
            else:
                self._resolver.keep_existing()

        if not pull_done:
            try:
                pull_result = self._pull.pull(identity_id)
            except (RemoteUnavailableError, RemoteRejectedError) as exc:
                logger.warning("pull_failed trigger=%s error=%s", trigger, exc)
                errors.append(str(exc))
                self._ledger.record_failure(REFERENCE_DATA_GROUP, str(exc))

        push_result = self._push.push()
        errors.extend(push_result.error_messages)

        if not errors:
            status: SyncStatus = "success"
        elif push_result.synced_count > 0 or pull_result is not None:
            status = "partial"
        else:
            status = "failed"
        return self._finish(
            status,
            _summary_message(status, pull_result, push_result),
            trigger,
            started_at,
            pull=pull_result,
            push=push_result,
            errors=errors,
        )

    def _finish(
        self,
        status: SyncStatus,
        message: str,
        trigger: str,
        started_at: str,
        *,
        pull: PullResult | None = None,
        push: PushResult | None = None,
        errors: list[str] | None = None,
    ) -> SyncResult:
        return SyncResult(
            status=status,
            message=message,
            trigger=trigger,
            started_at=started_at,
            finished_at=self._store.now_iso(),
            pull=pull,
            push=push,
            errors=list(errors or []),
        )

    def _log(self, event: str, **payload: object) -> None:
        if self._structured_logger is None:
            return
        self._structured_logger.log(event, **payload)
