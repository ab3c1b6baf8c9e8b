from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from attendance_sync.application.attendance_use_cases import AttendanceUseCases
from attendance_sync.application.conflict_resolver import ConflictResolver
from attendance_sync.application.pull_sync import PullSynchronizer
from attendance_sync.application.push_sync import PushSynchronizer
from attendance_sync.application.sync import ConflictDecider, StructuredFileLogger, SyncRunner
from attendance_sync.application.sync_scheduler import SyncScheduler
from attendance_sync.application.sync_status import SyncStatusService
from attendance_sync.application.version_gate import SchemaVersionGate
from attendance_sync.bootstrap.settings import (
    SECURE_VALUES_FILENAME,
    SYNC_AUDIT_LOG_NAME,
    TOKEN_ENV,
    resolve_data_dir,
    resolve_log_dir,
)
from attendance_sync.domain.models import SyncConfig
from attendance_sync.domain.ports import ConnectivityObserver, RemoteAttendanceApi
from attendance_sync.infrastructure.api_client import AttendanceApiClient
from attendance_sync.infrastructure.connectivity import SocketConnectivityObserver, probe_for_url
from attendance_sync.infrastructure.db import get_connection
from attendance_sync.infrastructure.dirty_tracker import DirtyTracker
from attendance_sync.infrastructure.local_config import SyncConfigStore
from attendance_sync.infrastructure.local_store import LocalStore
from attendance_sync.infrastructure.migrations import latest_schema_version, run_migrations
from attendance_sync.infrastructure.secure_store import FileSecureValueStore
from attendance_sync.infrastructure.sync_status_ledger import SyncStatusLedger


@dataclass
class Session:
    """Identidad con sesión iniciada y su token. La emisión de credenciales es externa."""

    identity_id: str | None = None
    token: str | None = field(default=None, repr=False)

    def token_provider(self) -> str | None:
        return self.token or os.environ.get(TOKEN_ENV)


@dataclass
class AppContainer:
    config: SyncConfig
    session: Session
    store: LocalStore
    attendance_use_cases: AttendanceUseCases
    pull_synchronizer: PullSynchronizer
    push_synchronizer: PushSynchronizer
    conflict_resolver: ConflictResolver
    sync_runner: SyncRunner
    scheduler: SyncScheduler
    status_service: SyncStatusService
    connectivity: ConnectivityObserver


ConnectionFactory = Callable[[], sqlite3.Connection]


def build_container(
    connection_factory: ConnectionFactory = get_connection,
    *,
    session: Session | None = None,
    data_dir: Path | None = None,
    api: RemoteAttendanceApi | None = None,
    connectivity: ConnectivityObserver | None = None,
    conflict_decider: ConflictDecider | None = None,
    audit_log_path: Path | None = None,
) -> AppContainer:
    base_dir = data_dir or resolve_data_dir()
    session = session or Session()
    config = SyncConfigStore(base_dir).load()
    secure_store = FileSecureValueStore(base_dir / SECURE_VALUES_FILENAME)

    connection = connection_factory()
    run_migrations(connection, version_writer=secure_store)

    store = LocalStore(connection)
    tracker = DirtyTracker(store)
    ledger = SyncStatusLedger(store)

    api = api or AttendanceApiClient(
        config.api_base_url,
        session.token_provider,
        timeout_seconds=config.request_timeout_seconds,
    )
    connectivity = connectivity or SocketConnectivityObserver(probe_for_url(config.api_base_url))

    pull = PullSynchronizer(store, api, ledger, staleness_window_seconds=config.staleness_window_seconds)
    push = PushSynchronizer(tracker, api, ledger)
    resolver = ConflictResolver(store, pull)
    runner = SyncRunner(
        store,
        ledger,
        pull,
        push,
        resolver,
        connectivity,
        SchemaVersionGate(secure_store, latest_schema_version()),
        structured_logger=StructuredFileLogger(audit_log_path or resolve_log_dir() / SYNC_AUDIT_LOG_NAME),
    )
    scheduler = SyncScheduler(
        runner,
        connectivity,
        lambda: session.identity_id,
        interval_seconds=config.sync_interval_seconds,
        conflict_decider=conflict_decider,
    )

    return AppContainer(
        config=config,
        session=session,
        store=store,
        attendance_use_cases=AttendanceUseCases(store),
        pull_synchronizer=pull,
        push_synchronizer=push,
        conflict_resolver=resolver,
        sync_runner=runner,
        scheduler=scheduler,
        status_service=SyncStatusService(store, tracker, ledger, scheduler),
        connectivity=connectivity,
    )
