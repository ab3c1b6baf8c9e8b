from __future__ import annotations

import argparse
import hashlib
import logging
import sqlite3
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from attendance_sync.bootstrap.logging import configure_logging
from attendance_sync.bootstrap.settings import resolve_data_dir, resolve_log_dir
from attendance_sync.infrastructure.db import default_db_path
from attendance_sync.infrastructure.dirty_tracker import DirtyTracker
from attendance_sync.infrastructure.local_store import LocalStore
from attendance_sync.infrastructure.secure_store import MIGRATION_VERSION_KEY, FileSecureValueStore

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


class VersionWriter(Protocol):
    def set(self, key: str, value: str) -> None:
        ...


@dataclass(frozen=True)
class MigrationDefinition:
    version: int
    name: str
    up_sql: Path
    down_sql: Path


class MigrationRunner:
    def __init__(self, connection: sqlite3.Connection, migrations_dir: Path | None = None) -> None:
        self.connection = connection
        self.connection.row_factory = sqlite3.Row
        self.migrations_dir = migrations_dir or MIGRATIONS_DIR
        self.migrations = self._discover_migrations()

    @property
    def latest_version(self) -> int:
        return self.migrations[-1].version if self.migrations else 0

    def apply_all(self) -> list[int]:
        self._ensure_history_table()
        applied_versions = self._applied_versions()
        applied_now: list[int] = []
        for migration in self.migrations:
            if migration.version in applied_versions:
                continue
            self._apply_migration(migration)
            applied_now.append(migration.version)
        return applied_now

    def rollback(self, steps: int = 1) -> list[int]:
        self._ensure_history_table()
        cursor = self.connection.cursor()
        cursor.execute("SELECT version FROM schema_migrations ORDER BY version DESC LIMIT ?", (steps,))
        versions_to_rollback = [row["version"] for row in cursor.fetchall()]
        version_map = {migration.version: migration for migration in self.migrations}
        rolled_back: list[int] = []
        for version in versions_to_rollback:
            self._rollback_migration(version_map[version])
            rolled_back.append(version)
        return rolled_back

    def current_version(self) -> int:
        self._ensure_history_table()
        row = self.connection.execute("SELECT COALESCE(MAX(version), 0) AS version FROM schema_migrations").fetchone()
        return int(row["version"])

    def status(self) -> list[dict[str, object]]:
        self._ensure_history_table()
        applied_versions = self._applied_versions()
        return [
            {
                "version": migration.version,
                "name": migration.name,
                "applied": migration.version in applied_versions,
            }
            for migration in self.migrations
        ]

    def _ensure_history_table(self) -> None:
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                checksum TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
            """
        )
        self.connection.commit()

    def _applied_versions(self) -> set[int]:
        rows = self.connection.execute("SELECT version FROM schema_migrations").fetchall()
        return {row["version"] for row in rows}

    def _apply_migration(self, migration: MigrationDefinition) -> None:
        sql_script = migration.up_sql.read_text(encoding="utf-8")
        checksum = hashlib.sha256(sql_script.encode("utf-8")).hexdigest()
        with self.connection:
            if sql_script.strip():
                self.connection.executescript(sql_script)
            self.connection.execute(
                """
                INSERT INTO schema_migrations (version, name, checksum, applied_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    migration.version,
                    migration.name,
                    checksum,
                    datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                ),
            )
            self.connection.execute(f"PRAGMA user_version = {migration.version}")
        logger.info("migration_applied version=%s name=%s", migration.version, migration.name)

    def _rollback_migration(self, migration: MigrationDefinition) -> None:
        sql_script = migration.down_sql.read_text(encoding="utf-8")
        with self.connection:
            if sql_script.strip():
                self.connection.executescript(sql_script)
            self.connection.execute("DELETE FROM schema_migrations WHERE version = ?", (migration.version,))
            previous = self.connection.execute(
                "SELECT COALESCE(MAX(version), 0) AS version FROM schema_migrations"
            ).fetchone()["version"]
            self.connection.execute(f"PRAGMA user_version = {previous}")
        logger.info("migration_rolled_back version=%s name=%s", migration.version, migration.name)

    def _discover_migrations(self) -> list[MigrationDefinition]:
        definitions: list[MigrationDefinition] = []
        for up_file in sorted(self.migrations_dir.glob("*.up.sql")):
            stem = up_file.name[: -len(".up.sql")]
            version_text, name = stem.split("_", maxsplit=1)
            down_file = self.migrations_dir / f"{stem}.down.sql"
            if not down_file.exists():
                raise FileNotFoundError(f"Missing down migration for {up_file.name}: {down_file}")
            definitions.append(
                MigrationDefinition(version=int(version_text), name=name, up_sql=up_file, down_sql=down_file)
            )
        return definitions


def latest_schema_version(migrations_dir: Path | None = None) -> int:
    ups = sorted((migrations_dir or MIGRATIONS_DIR).glob("*.up.sql"))
    if not ups:
        return 0
    return int(ups[-1].name.split("_", maxsplit=1)[0])


def run_migrations(connection: sqlite3.Connection, *, version_writer: VersionWriter | None = None) -> int:
    """Aplica migraciones pendientes, repara reescrituras interrumpidas y publica la versión."""
    runner = MigrationRunner(connection)
    runner.apply_all()
    run_data_fixups(connection)
    version = runner.current_version()
    if version_writer is not None:
        version_writer.set(MIGRATION_VERSION_KEY, str(version))
    return version


def run_data_fixups(connection: sqlite3.Connection) -> int:
    return DirtyTracker(LocalStore(connection)).repair_interrupted_rewrites()


def build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Gestiona migraciones SQLite de la base local")
    parser.add_argument("command", choices=["up", "down", "status"], help="Operación a ejecutar")
    parser.add_argument("--db", default=str(default_db_path()), help="Ruta al archivo SQLite")
    parser.add_argument("--steps", type=int, default=1, help="Número de migraciones a revertir")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging(resolve_log_dir())
    args = build_cli().parse_args(argv)

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(db_path)
    connection.row_factory = sqlite3.Row
    version_store = FileSecureValueStore(resolve_data_dir() / "secure_values.json")

    try:
        if args.command == "up":
            version = run_migrations(connection, version_writer=version_store)
            logger.info("Migraciones aplicadas", extra={"extra": {"command": "up", "version": version}})
        elif args.command == "down":
            runner = MigrationRunner(connection)
            rolled_back = runner.rollback(args.steps)
            version_store.set(MIGRATION_VERSION_KEY, str(runner.current_version()))
            logger.info("Migraciones revertidas", extra={"extra": {"command": "down", "count": len(rolled_back)}})
        else:
            for item in MigrationRunner(connection).status():
                marker = "[x]" if item["applied"] else "[ ]"
                sys.stdout.write(f"{marker} {item['version']:04d} {item['name']}\n")
    finally:
        connection.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
