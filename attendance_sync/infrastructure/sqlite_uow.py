from __future__ import annotations

import contextlib
import sqlite3
import uuid
from collections.abc import Iterator

from attendance_sync.core.errors import LocalStoreError


@contextlib.contextmanager
def transaccion(connection: sqlite3.Connection, *, immediate: bool = False) -> Iterator[None]:
    """Gestiona transacciones SQLite con soporte de anidamiento vía SAVEPOINT.

    ``immediate`` toma el lock de escritura al empezar; se usa en las reescrituras
    de id que tocan varias tablas.
    """
    if connection.in_transaction:
        savepoint_name = f"sp_{uuid.uuid4().hex}"
        connection.execute(f"SAVEPOINT {savepoint_name}")
        try:
            yield
            connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
        except Exception:
            connection.execute(f"ROLLBACK TO SAVEPOINT {savepoint_name}")
            connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
            raise
        return

    connection.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield
        connection.commit()
    except Exception:
        connection.rollback()
        raise


@contextlib.contextmanager
def store_errors(context: str) -> Iterator[None]:
    """Traduce errores de sqlite3 a LocalStoreError conservando la causa."""
    try:
        yield
    except sqlite3.Error as exc:
        raise LocalStoreError(f"{context}: {exc}") from exc
