from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any

from attendance_sync.core.observability import log_event
from attendance_sync.domain.ports import RemoteAttendanceApi
from attendance_sync.domain.sync_models import PullResult
from attendance_sync.domain.tables import (
    ASSIGNMENTS,
    CLASSES,
    IDENTITIES,
    REFERENCE_DATA_GROUP,
    STUDENTS,
    SUBJECTS,
)
from attendance_sync.infrastructure.local_store import LocalStore
from attendance_sync.infrastructure.sync_status_ledger import SyncStatusLedger

logger = logging.getLogger(__name__)

DEFAULT_STALENESS_WINDOW_SECONDS = 3600


def _with_ids(records: list[dict[str, Any]], table: str) -> list[dict[str, Any]]:
    valid = [record for record in records if record.get("id") not in (None, "")]
    dropped = len(records) - len(valid)
    if dropped:
        logger.warning("pull_records_without_id table=%s dropped=%s", table, dropped)
    return valid


def _class_ids(assignments: list[dict[str, Any]]) -> list[str]:
    ids: list[str] = []
    for assignment in assignments:
        class_id = assignment.get(ASSIGNMENTS.json_key("class_id"))
        if class_id and str(class_id) not in ids:
            ids.append(str(class_id))
    return ids


class PullSynchronizer:
    """Descarga los datos de referencia de una identidad y los vuelca en el espejo local.

    Los datos de referencia nunca se editan offline, así que el remoto siempre gana
    y ninguna fila queda sucia por este camino.
    """

    def __init__(
        self,
        store: LocalStore,
        api: RemoteAttendanceApi,
        ledger: SyncStatusLedger,
        *,
        staleness_window_seconds: int = DEFAULT_STALENESS_WINDOW_SECONDS,
        max_workers: int = 3,
    ) -> None:
        self._store = store
        self._api = api
        self._ledger = ledger
        self._staleness_window = timedelta(seconds=staleness_window_seconds)
        self._max_workers = max_workers

    def is_fresh(self) -> bool:
        last_synced_at = self._ledger.last_synced_at(REFERENCE_DATA_GROUP)
        if last_synced_at is None:
            return False
        return self._store.now() - last_synced_at < self._staleness_window

    def pull(self, identity_id: str, *, force: bool = False) -> PullResult:
        if not force and self.is_fresh():
            log_event(logger, "pull_skipped_fresh", {"identity_id": identity_id})
            return PullResult(skipped=True)

        assignments_payload = self._api.get_assignments(identity_id)
        assignments = _with_ids(assignments_payload.assignments, ASSIGNMENTS.name)
        if not assignments:
            log_event(logger, "pull_no_assignments", {"identity_id": identity_id})
            return PullResult()

        class_ids = _class_ids(assignments)
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="pull") as executor:
            classes_future = executor.submit(self._api.get_classes, class_ids)
            students_future = executor.submit(self._api.get_students_by_class, class_ids)
            subjects_future = executor.submit(self._api.get_subjects)
            classes = _with_ids(classes_future.result(), CLASSES.name)
            students = _with_ids(students_future.result(), STUDENTS.name)
            subjects = _with_ids(subjects_future.result(), SUBJECTS.name)

        identity = assignments_payload.identity
        with self._store.transaction("pull.upsert", immediate=True):
            if identity and identity.get("id"):
                self._store.upsert_remote(IDENTITIES.name, identity, owner_id=identity_id)
            for table, records in (
                (CLASSES.name, classes),
                (ASSIGNMENTS.name, assignments),
                (STUDENTS.name, students),
                (SUBJECTS.name, subjects),
            ):
                for record in records:
                    self._store.upsert_remote(table, record, owner_id=identity_id)

        result = PullResult(
            classes=len(classes),
            students=len(students),
            subjects=len(subjects),
            assignments=len(assignments),
        )
        self._ledger.record_success(REFERENCE_DATA_GROUP, synced_count=result.total)
        log_event(
            logger,
            "pull_completed",
            {
                "identity_id": identity_id,
                "classes": result.classes,
                "students": result.students,
                "subjects": result.subjects,
                "assignments": result.assignments,
            },
        )
        return result
