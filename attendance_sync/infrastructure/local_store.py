from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Literal, TypeVar

from attendance_sync.core.errors import LocalStoreError
from attendance_sync.domain.local_ids import new_local_id
from attendance_sync.domain.tables import MIRRORED_TABLES, TableSpec, table_spec
from attendance_sync.infrastructure.sqlite_uow import store_errors, transaccion

logger = logging.getLogger(__name__)

_LOCKED_RETRY_BACKOFF_SECONDS = (0.05, 0.15, 0.3)
_T = TypeVar("_T")

UpsertOutcome = Literal["inserted", "updated"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_db_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return value


def _is_locked_operational_error(error: sqlite3.OperationalError) -> bool:
    return "locked" in str(error).lower()


def _run_with_locked_retry(operation: Callable[[], _T], *, context: str) -> _T:
    for attempt, delay_seconds in enumerate(_LOCKED_RETRY_BACKOFF_SECONDS, start=1):
        try:
            return operation()
        except sqlite3.OperationalError as error:
            if not _is_locked_operational_error(error):
                raise
            logger.warning(
                "SQLite locked in %s (attempt=%s/%s); retrying in %.0fms",
                context,
                attempt,
                len(_LOCKED_RETRY_BACKOFF_SECONDS),
                delay_seconds * 1000,
            )
            time.sleep(delay_seconds)

    return operation()


class LocalStore:
    """Espejo relacional local de las entidades remotas más sus metadatos de sync.

    Todas las lecturas y escrituras pasan por un RLock: la conexión se comparte entre
    el hilo de sincronización y los lectores de la UI (p. ej. el contador de pendientes).
    """

    def __init__(self, connection: sqlite3.Connection, *, clock: Callable[[], datetime] = _utc_now) -> None:
        self._connection = connection
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._clock = clock

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def now(self) -> datetime:
        return self._clock()

    def now_iso(self) -> str:
        return format_timestamp(self._clock())

    @contextlib.contextmanager
    def reading(self, context: str = "read") -> Iterator[sqlite3.Connection]:
        with self._lock, store_errors(context):
            yield self._connection

    @contextlib.contextmanager
    def transaction(self, context: str = "write", *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        with self._lock, store_errors(context), transaccion(self._connection, immediate=immediate):
            yield self._connection

    def write(self, context: str, operation: Callable[[sqlite3.Connection], _T], *, immediate: bool = False) -> _T:
        def _attempt() -> _T:
            with self._lock, transaccion(self._connection, immediate=immediate):
                return operation(self._connection)

        with store_errors(context):
            return _run_with_locked_retry(_attempt, context=context)

    def get_row(self, table: str, record_id: str) -> dict[str, Any] | None:
        spec = table_spec(table)
        with self.reading(f"get_row({table})") as connection:
            row = connection.execute(f"SELECT * FROM {spec.name} WHERE id = ?", (record_id,)).fetchone()
        return dict(row) if row else None

    def select(self, table: str, where: str = "", params: Iterable[Any] = (), order_by: str = "created_at") -> list[dict[str, Any]]:
        spec = table_spec(table)
        sql = f"SELECT * FROM {spec.name}"
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        with self.reading(f"select({table})") as connection:
            rows = connection.execute(sql, tuple(params)).fetchall()
        return [dict(row) for row in rows]

    def insert_local(self, table: str, values: dict[str, Any], *, owner_id: str) -> str:
        """Crea una fila local sucia con id temporal."""
        spec = table_spec(table)
        _reject_unknown_columns(spec, values)
        record_id = new_local_id()
        now = self.now_iso()
        columns = ["id", *values.keys(), "owner_id", "created_at", "updated_at", "last_synced_at", "is_dirty"]
        params = [record_id, *(_to_db_value(value) for value in values.values()), owner_id, now, now, None, 1]
        placeholders = ", ".join("?" for _ in columns)

        def _insert(connection: sqlite3.Connection) -> str:
            connection.execute(
                f"INSERT INTO {spec.name} ({', '.join(columns)}) VALUES ({placeholders})",
                params,
            )
            return record_id

        return self.write(f"insert_local({table})", _insert)

    def update_local(self, table: str, record_id: str, changes: dict[str, Any]) -> bool:
        """Aplica un cambio local y vuelve a marcar la fila como sucia."""
        spec = table_spec(table)
        _reject_unknown_columns(spec, changes)
        if not changes:
            return False
        assignments = ", ".join(f"{column} = ?" for column in changes)
        params = [*(_to_db_value(value) for value in changes.values()), self.now_iso(), record_id]

        def _update(connection: sqlite3.Connection) -> bool:
            cursor = connection.execute(
                f"UPDATE {spec.name} SET {assignments}, is_dirty = 1, updated_at = ? WHERE id = ?",
                params,
            )
            return cursor.rowcount > 0

        return self.write(f"update_local({table})", _update)

    def upsert_remote(self, table: str, record: dict[str, Any], *, owner_id: str) -> UpsertOutcome:
        """Inserta o sobrescribe una fila de datos de referencia con el estado remoto.

        Lectura previa por id de servidor y después INSERT o UPDATE: el remoto siempre gana.
        """
        spec = table_spec(table)
        record_id = record.get("id")
        if record_id in (None, ""):
            raise LocalStoreError(f"Registro remoto sin id para {table}")
        record_id = str(record_id)
        domain_values = {column: _to_db_value(record.get(spec.json_key(column))) for column in spec.columns}
        now = self.now_iso()

        def _upsert(connection: sqlite3.Connection) -> UpsertOutcome:
            exists = connection.execute(f"SELECT 1 FROM {spec.name} WHERE id = ?", (record_id,)).fetchone()
            if exists:
                assignments = ", ".join(f"{column} = ?" for column in domain_values)
                connection.execute(
                    f"UPDATE {spec.name} SET {assignments}, owner_id = ?, updated_at = ?, "
                    "last_synced_at = ?, is_dirty = 0 WHERE id = ?",
                    (*domain_values.values(), owner_id, now, now, record_id),
                )
                return "updated"
            columns = ["id", *domain_values.keys(), "owner_id", "created_at", "updated_at", "last_synced_at", "is_dirty"]
            placeholders = ", ".join("?" for _ in columns)
            connection.execute(
                f"INSERT INTO {spec.name} ({', '.join(columns)}) VALUES ({placeholders})",
                (record_id, *domain_values.values(), owner_id, now, now, now, 0),
            )
            return "inserted"

        return self.write(f"upsert_remote({table})", _upsert)

    def owner_counts(self) -> dict[str, int]:
        """Filas por propietario sumando todas las tablas espejo."""
        union = " UNION ALL ".join(f"SELECT owner_id FROM {spec.name}" for spec in MIRRORED_TABLES)
        sql = f"SELECT owner_id, COUNT(*) AS total FROM ({union}) GROUP BY owner_id ORDER BY total DESC"
        with self.reading("owner_counts") as connection:
            rows = connection.execute(sql).fetchall()
        return {row["owner_id"]: int(row["total"]) for row in rows}

    def wipe(self) -> None:
        """Borra todas las tablas espejo y el ledger de sync en una sola transacción."""

        def _wipe(connection: sqlite3.Connection) -> None:
            for spec in MIRRORED_TABLES:
                connection.execute(f"DELETE FROM {spec.name}")
            connection.execute("DELETE FROM sync_status")

        self.write("wipe", _wipe, immediate=True)
        logger.info("local_store_wiped")


def _reject_unknown_columns(spec: TableSpec, values: dict[str, Any]) -> None:
    unknown = sorted(set(values) - set(spec.columns))
    if unknown:
        raise ValueError(f"Columnas desconocidas para {spec.name}: {', '.join(unknown)}")
