from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Literal

SyncTrigger = Literal["app_start", "connectivity", "interval", "manual"]
SyncStatus = Literal["success", "partial", "failed", "offline", "conflict", "already_running", "skipped"]
ConflictDecision = Literal["discard", "keep"]


class SchedulerState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass(frozen=True)
class PullResult:
    classes: int = 0
    students: int = 0
    subjects: int = 0
    assignments: int = 0
    skipped: bool = False

    @property
    def total(self) -> int:
        return self.classes + self.students + self.subjects + self.assignments


@dataclass(frozen=True)
class PushError:
    table: str
    record_id: str
    message: str
    retryable: bool


@dataclass(frozen=True)
class PushResult:
    synced_count: int = 0
    errors: tuple[PushError, ...] = ()

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def error_messages(self) -> list[str]:
        return [error.message for error in self.errors]


@dataclass(frozen=True)
class PendingSyncCount:
    teacher_pending: int
    student_pending: int

    @property
    def total(self) -> int:
        return self.teacher_pending + self.student_pending


@dataclass(frozen=True)
class ConflictCheck:
    has_conflict: bool
    existing_identity_id: str | None = None
    existing_identity_label: str | None = None


@dataclass(frozen=True)
class SyncStatusEntry:
    table_name: str
    last_synced_at: str | None
    last_sync_error: str | None
    last_synced_count: int = 0


@dataclass(frozen=True)
class SyncResult:
    status: SyncStatus
    message: str
    trigger: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    pull: PullResult | None = None
    push: PushResult | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in ("success", "skipped")

    def summary_line(self) -> str:
        return self.message.splitlines()[0] if self.message else self.status

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
