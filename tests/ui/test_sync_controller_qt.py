from __future__ import annotations

import time

import pytest

from attendance_sync.domain.sync_models import PendingSyncCount, SyncResult


class _FakeSignal:
    def __init__(self) -> None:
        self.callbacks = []

    def connect(self, callback) -> None:
        self.callbacks.append(callback)

    def emit(self, *args) -> None:
        for callback in list(self.callbacks):
            callback(*args)


class _FakeThread:
    def __init__(self) -> None:
        self.started = _FakeSignal()
        self.finished = _FakeSignal()
        self.started_flag = False

    def quit(self, *_args) -> None:
        self.finished.emit()

    def deleteLater(self) -> None:
        return None

    def start(self) -> None:
        self.started_flag = True


class _FakeWorker:
    def __init__(self, operation, _correlation_id: str, _trigger: str) -> None:
        self.operation = operation
        self.finished = _FakeSignal()
        self.failed = _FakeSignal()

    def moveToThread(self, _thread) -> None:
        return None

    def run(self) -> None:
        try:
            result = self.operation()
        except Exception as exc:  # noqa: BLE001
            self.failed.emit({"error": exc})
            return
        self.finished.emit(result)

    def deleteLater(self) -> None:
        return None


class _SchedulerStub:
    def __init__(self, error: Exception | None = None) -> None:
        self.triggers: list[str] = []
        self._error = error

    def request_sync(self, trigger: str) -> SyncResult:
        self.triggers.append(trigger)
        if self._error is not None:
            raise self._error
        return SyncResult(status="success", message="ok", trigger=trigger)


class _StatusStub:
    def get_pending_sync_count(self) -> PendingSyncCount:
        return PendingSyncCount(teacher_pending=0, student_pending=1)


@pytest.fixture
def qt_app():
    from PySide6.QtCore import QCoreApplication

    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def fake_threads(monkeypatch):
    from attendance_sync.ui import sync_controller as module

    monkeypatch.setattr(module, "QThread", _FakeThread)
    monkeypatch.setattr(module, "_SyncWorker", _FakeWorker)
    return module


def test_request_sync_starts_worker_thread(qt_app, fake_threads) -> None:
    scheduler = _SchedulerStub()
    controller = fake_threads.SyncController(scheduler, _StatusStub())

    assert controller.request_sync("manual") is True

    assert controller.is_running is True
    assert controller._thread.started_flag is True
    assert controller.request_sync("manual") is False
    assert scheduler.triggers == []


def test_worker_result_is_published_and_thread_released(qt_app, fake_threads) -> None:
    scheduler = _SchedulerStub()
    controller = fake_threads.SyncController(scheduler, _StatusStub())
    finished: list[SyncResult] = []
    pending: list[PendingSyncCount] = []
    controller.sync_finished.connect(finished.append)
    controller.pending_changed.connect(pending.append)

    controller.request_sync("manual")
    controller._thread.started.emit()

    assert [result.status for result in finished] == ["success"]
    assert [count.total for count in pending] == [1]
    assert scheduler.triggers == ["manual"]
    assert controller.is_running is False


def test_worker_failure_emits_sync_failed(qt_app, fake_threads) -> None:
    controller = fake_threads.SyncController(_SchedulerStub(RuntimeError("boom")), _StatusStub())
    failures: list[object] = []
    controller.sync_failed.connect(failures.append)

    controller.request_sync("interval")
    controller._thread.started.emit()

    assert len(failures) == 1
    assert str(failures[0]["error"]) == "boom"
    assert controller.is_running is False


def test_real_thread_round_trip(qt_app) -> None:
    from PySide6.QtCore import QCoreApplication, QEventLoop, QTimer

    from attendance_sync.ui.sync_controller import SyncController

    scheduler = _SchedulerStub()
    controller = SyncController(scheduler, _StatusStub())
    finished: list[SyncResult] = []
    loop = QEventLoop()
    controller.sync_finished.connect(finished.append)
    controller.sync_finished.connect(lambda _result: loop.quit())
    QTimer.singleShot(5000, loop.quit)

    assert controller.request_sync("manual") is True
    loop.exec()

    deadline = time.monotonic() + 5
    while controller.is_running and time.monotonic() < deadline:
        QCoreApplication.processEvents()
        time.sleep(0.01)

    assert [result.trigger for result in finished] == ["manual"]
    assert controller.is_running is False
