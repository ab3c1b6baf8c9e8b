from __future__ import annotations

import logging

from attendance_sync.application.sync_scheduler import SyncScheduler
from attendance_sync.domain.sync_models import PendingSyncCount, SyncResult, SyncStatusEntry
from attendance_sync.domain.tables import STUDENT_ATTENDANCE, TEACHER_ATTENDANCE
from attendance_sync.infrastructure.dirty_tracker import DirtyTracker
from attendance_sync.infrastructure.local_store import LocalStore
from attendance_sync.infrastructure.sync_status_ledger import SyncStatusLedger

logger = logging.getLogger(__name__)


class SyncStatusService:
    """Lo único que la UI consulta del motor de sync, junto con ``request_sync``."""

    def __init__(
        self,
        store: LocalStore,
        tracker: DirtyTracker,
        ledger: SyncStatusLedger,
        scheduler: SyncScheduler | None = None,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._ledger = ledger
        self._scheduler = scheduler

    def get_pending_sync_count(self) -> PendingSyncCount:
        return PendingSyncCount(
            teacher_pending=self._tracker.count_dirty(TEACHER_ATTENDANCE.name),
            student_pending=self._tracker.count_dirty(STUDENT_ATTENDANCE.name),
        )

    def has_unsynced_records(self) -> bool:
        return self.get_pending_sync_count().total > 0

    def last_sync_result(self) -> SyncResult | None:
        if self._scheduler is None:
            return None
        return self._scheduler.last_result

    def ledger_entries(self) -> list[SyncStatusEntry]:
        return self._ledger.entries()

    def clear_local_data(self) -> None:
        pending = self.get_pending_sync_count().total
        if pending:
            logger.warning("clear_local_data_with_pending_records pending=%s", pending)
        self._store.wipe()
