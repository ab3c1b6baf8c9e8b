from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from attendance_sync.bootstrap.container import AppContainer, Session, build_container
from attendance_sync.bootstrap.logging import configure_logging
from attendance_sync.bootstrap.settings import resolve_log_dir
from attendance_sync.domain.sync_models import ConflictCheck, ConflictDecision
from attendance_sync.domain.tables import ATTENDANCE_TABLES
from attendance_sync.infrastructure import migrations
from attendance_sync.infrastructure.db import default_db_path, get_connection

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SYNC_ERRORS = 1
EXIT_CONFLICT = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="attendance_sync", description="Sincronización local-first de asistencia")
    parser.add_argument("--db", default=None, help="Ruta al archivo SQLite")
    parser.add_argument("--data-dir", default=None, help="Directorio de datos (config.json, valores seguros)")
    parser.add_argument("--json", action="store_true", help="Salida JSON")
    commands = parser.add_subparsers(dest="command", required=True)

    sync_parser = commands.add_parser("sync", help="Ejecuta un intento de sincronización")
    sync_parser.add_argument("--identity", required=True, help="Id de la identidad con sesión iniciada")
    decision = sync_parser.add_mutually_exclusive_group()
    decision.add_argument("--discard", action="store_true", help="Si hay datos de otra identidad, descartarlos")
    decision.add_argument("--keep", action="store_true", help="Si hay datos de otra identidad, conservarlos")

    resync_parser = commands.add_parser("resync", help="Reenvía en bloque las filas pendientes de una tabla")
    resync_parser.add_argument("table", choices=[spec.name for spec in ATTENDANCE_TABLES])

    commands.add_parser("status", help="Muestra el ledger de sincronización")
    commands.add_parser("pending", help="Muestra los registros pendientes de enviar")

    migrate_parser = commands.add_parser("migrate", help="Gestiona migraciones de la base local")
    migrate_parser.add_argument("action", choices=["up", "down", "status"])
    migrate_parser.add_argument("--steps", type=int, default=1)
    return parser


def _write(payload: Any, *, as_json: bool, text: str) -> None:
    if as_json:
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    else:
        sys.stdout.write(text + "\n")


def _container(args: argparse.Namespace, session: Session | None = None) -> AppContainer:
    db_path = Path(args.db) if args.db else default_db_path()
    data_dir = Path(args.data_dir) if args.data_dir else None
    return build_container(lambda: get_connection(db_path), session=session, data_dir=data_dir)


def _decider(args: argparse.Namespace):
    choice: ConflictDecision | None = "discard" if args.discard else "keep" if args.keep else None

    def _decide(check: ConflictCheck) -> ConflictDecision | None:
        logger.info("cli_conflict_decision existing=%s decision=%s", check.existing_identity_id, choice)
        return choice

    return _decide


def _run_sync(args: argparse.Namespace) -> int:
    container = _container(args, Session(identity_id=args.identity))
    result = container.sync_runner.run_once(args.identity, "manual", conflict_decider=_decider(args))
    _write(result.to_dict(), as_json=args.json, text=result.summary_line())
    if result.status == "conflict":
        return EXIT_CONFLICT
    return EXIT_OK if result.succeeded else EXIT_SYNC_ERRORS


def _run_resync(args: argparse.Namespace) -> int:
    container = _container(args)
    result = container.scheduler.request_bulk_push(args.table)
    push = result.push
    payload = {
        "status": result.status,
        "message": result.message,
        "synced_count": push.synced_count if push else 0,
        "errors": [asdict(error) for error in push.errors] if push else [],
    }
    _write(payload, as_json=args.json, text=result.summary_line())
    return EXIT_OK if result.succeeded else EXIT_SYNC_ERRORS


def _run_status(args: argparse.Namespace) -> int:
    container = _container(args)
    entries = container.status_service.ledger_entries()
    lines = [
        f"{entry.table_name}: último sync {entry.last_synced_at or 'nunca'}"
        + (f" | error: {entry.last_sync_error}" if entry.last_sync_error else "")
        for entry in entries
    ]
    _write([asdict(entry) for entry in entries], as_json=args.json, text="\n".join(lines) or "Sin sincronizaciones")
    return EXIT_OK


def _run_pending(args: argparse.Namespace) -> int:
    pending = _container(args).status_service.get_pending_sync_count()
    payload = {
        "teacher_pending": pending.teacher_pending,
        "student_pending": pending.student_pending,
        "total": pending.total,
    }
    text = f"Pendientes: {pending.total} (docente {pending.teacher_pending}, alumnado {pending.student_pending})"
    _write(payload, as_json=args.json, text=text)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "migrate":
        migrate_argv = [args.action, "--steps", str(args.steps)]
        if args.db:
            migrate_argv += ["--db", args.db]
        return migrations.main(migrate_argv)

    configure_logging(resolve_log_dir())
    handlers = {
        "sync": _run_sync,
        "resync": _run_resync,
        "status": _run_status,
        "pending": _run_pending,
    }
    return handlers[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
