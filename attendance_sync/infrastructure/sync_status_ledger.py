from __future__ import annotations

import sqlite3
from datetime import datetime

from attendance_sync.domain.sync_models import SyncStatusEntry
from attendance_sync.infrastructure.local_store import LocalStore, parse_timestamp

_UPSERT_SQL = """
    INSERT INTO sync_status (table_name, last_synced_at, last_sync_error, last_synced_count, created_at, updated_at)
    VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT(table_name) DO UPDATE SET
        last_synced_at = COALESCE(excluded.last_synced_at, sync_status.last_synced_at),
        last_sync_error = excluded.last_sync_error,
        last_synced_count = CASE
            WHEN excluded.last_synced_at IS NULL THEN sync_status.last_synced_count
            ELSE excluded.last_synced_count
        END,
        updated_at = excluded.updated_at
"""


class SyncStatusLedger:
    """Una fila por tabla sincronizada: último sync correcto y último error."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def get(self, table_name: str) -> SyncStatusEntry | None:
        with self._store.reading("sync_status.get") as connection:
            row = connection.execute(
                """
                SELECT table_name, last_synced_at, last_sync_error, last_synced_count
                FROM sync_status
                WHERE table_name = ?
                """,
                (table_name,),
            ).fetchone()
        if row is None:
            return None
        return SyncStatusEntry(
            table_name=row["table_name"],
            last_synced_at=row["last_synced_at"],
            last_sync_error=row["last_sync_error"],
            last_synced_count=int(row["last_synced_count"] or 0),
        )

    def last_synced_at(self, table_name: str) -> datetime | None:
        entry = self.get(table_name)
        return parse_timestamp(entry.last_synced_at) if entry else None

    def entries(self) -> list[SyncStatusEntry]:
        with self._store.reading("sync_status.entries") as connection:
            rows = connection.execute(
                "SELECT table_name, last_synced_at, last_sync_error, last_synced_count FROM sync_status ORDER BY table_name"
            ).fetchall()
        return [
            SyncStatusEntry(
                table_name=row["table_name"],
                last_synced_at=row["last_synced_at"],
                last_sync_error=row["last_sync_error"],
                last_synced_count=int(row["last_synced_count"] or 0),
            )
            for row in rows
        ]

    def record_success(self, table_name: str, *, synced_count: int = 0, error: str | None = None) -> None:
        now = self._store.now_iso()
        self._upsert(table_name, last_synced_at=now, error=error, synced_count=synced_count, now=now)

    def record_failure(self, table_name: str, error: str) -> None:
        """Registra el error sin mover ``last_synced_at``."""
        now = self._store.now_iso()
        self._upsert(table_name, last_synced_at=None, error=error, synced_count=0, now=now)

    def _upsert(
        self,
        table_name: str,
        *,
        last_synced_at: str | None,
        error: str | None,
        synced_count: int,
        now: str,
    ) -> None:
        def _write(connection: sqlite3.Connection) -> None:
            connection.execute(
                _UPSERT_SQL,
                (table_name, last_synced_at, error, synced_count, now, now),
            )

        self._store.write(f"sync_status.upsert({table_name})", _write)
