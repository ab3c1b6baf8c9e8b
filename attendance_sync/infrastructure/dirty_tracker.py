from __future__ import annotations

import logging
import sqlite3
from typing import Any

from attendance_sync.core.errors import LocalStoreError
from attendance_sync.domain.local_ids import LOCAL_ID_PREFIX, is_local_id
from attendance_sync.domain.tables import MIRRORED_TABLES, referencing_columns, table_spec
from attendance_sync.infrastructure.local_store import LocalStore

logger = logging.getLogger(__name__)


class DirtyTracker:
    """Marca, lista y limpia el flag ``is_dirty`` por fila."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def mark_dirty(self, table: str, record_id: str) -> bool:
        spec = table_spec(table)
        now = self._store.now_iso()

        def _mark(connection: sqlite3.Connection) -> bool:
            cursor = connection.execute(
                f"UPDATE {spec.name} SET is_dirty = 1, updated_at = ? WHERE id = ?",
                (now, record_id),
            )
            return cursor.rowcount > 0

        return self._store.write(f"mark_dirty({table})", _mark)

    def list_dirty(self, table: str) -> list[dict[str, Any]]:
        return self._store.select(table, "is_dirty = 1", order_by="created_at, id")

    def count_dirty(self, table: str) -> int:
        spec = table_spec(table)
        with self._store.reading(f"count_dirty({table})") as connection:
            row = connection.execute(f"SELECT COUNT(*) AS total FROM {spec.name} WHERE is_dirty = 1").fetchone()
        return int(row["total"] if row else 0)

    def clear_dirty(
        self,
        table: str,
        record_id: str,
        new_id: str | None = None,
        *,
        expected_updated_at: str | None = None,
    ) -> bool:
        """Confirma una fila tras un push correcto.

        Si llega ``new_id`` se reescribe la clave primaria y todas las FKs que apuntan
        a ella en la misma transacción. Con ``expected_updated_at`` el flag sólo se
        limpia si nadie editó la fila mientras la petición estaba en vuelo; la
        reescritura de id se aplica igualmente.

        Devuelve True si el flag quedó limpio.
        """
        spec = table_spec(table)
        now = self._store.now_iso()
        target_id = new_id or record_id

        def _clear(connection: sqlite3.Connection) -> bool:
            row = connection.execute(
                f"SELECT updated_at FROM {spec.name} WHERE id = ?", (record_id,)
            ).fetchone()
            if row is None:
                raise LocalStoreError(f"No existe {table}.{record_id}")

            if new_id and new_id != record_id:
                if is_local_id(new_id):
                    raise LocalStoreError(f"El id de servidor no puede llevar el prefijo {LOCAL_ID_PREFIX}: {new_id}")
                self._rewrite_id(connection, spec.name, record_id, new_id)

            edited_in_flight = expected_updated_at is not None and row["updated_at"] != expected_updated_at
            if edited_in_flight:
                connection.execute(
                    f"UPDATE {spec.name} SET last_synced_at = ? WHERE id = ?",
                    (now, target_id),
                )
                return False
            connection.execute(
                f"UPDATE {spec.name} SET is_dirty = 0, last_synced_at = ? WHERE id = ?",
                (now, target_id),
            )
            return True

        cleared = self._store.write(f"clear_dirty({table})", _clear, immediate=bool(new_id))
        if not cleared:
            logger.info("dirty_kept_after_concurrent_edit table=%s id=%s", table, target_id)
        return cleared

    def _rewrite_id(self, connection: sqlite3.Connection, table: str, old_id: str, new_id: str) -> None:
        clash = connection.execute(f"SELECT 1 FROM {table} WHERE id = ?", (new_id,)).fetchone()
        if clash:
            # Una fila con el id de servidor ya llegó por pull: la temporal es la misma entidad.
            connection.execute(f"DELETE FROM {table} WHERE id = ?", (new_id,))
        connection.execute(f"UPDATE {table} SET id = ? WHERE id = ?", (new_id, old_id))
        rewritten = 0
        for referencing_table, column in referencing_columns(table):
            cursor = connection.execute(
                f"UPDATE {referencing_table} SET {column} = ? WHERE {column} = ?",
                (new_id, old_id),
            )
            rewritten += cursor.rowcount
        logger.info(
            "local_id_rewritten table=%s old_id=%s new_id=%s references=%s",
            table,
            old_id,
            new_id,
            rewritten,
        )

    def find_interrupted_rewrites(self) -> list[tuple[str, str]]:
        """Filas con id temporal pero ya limpias: una reescritura quedó a medias."""
        found: list[tuple[str, str]] = []
        with self._store.reading("find_interrupted_rewrites") as connection:
            for spec in MIRRORED_TABLES:
                rows = connection.execute(
                    f"SELECT id FROM {spec.name} WHERE is_dirty = 0 AND substr(id, 1, ?) = ?",
                    (len(LOCAL_ID_PREFIX), LOCAL_ID_PREFIX),
                ).fetchall()
                found.extend((spec.name, row["id"]) for row in rows)
        return found

    def repair_interrupted_rewrites(self) -> int:
        interrupted = self.find_interrupted_rewrites()
        for table, record_id in interrupted:
            self.mark_dirty(table, record_id)
            logger.warning("interrupted_rewrite_recovered table=%s id=%s", table, record_id)
        return len(interrupted)
