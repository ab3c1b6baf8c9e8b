from __future__ import annotations

import logging
import socket
import threading
from typing import Callable
from urllib.parse import urlparse

from attendance_sync.domain.ports import ConnectivityListener, ConnectivityObserver

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]


def socket_probe(host: str, port: int, *, timeout_seconds: float = 3.0) -> Probe:
    def _check() -> bool:
        try:
            socket.create_connection((host, port), timeout=timeout_seconds).close()
        except OSError:
            return False
        return True

    return _check


def probe_for_url(base_url: str, *, timeout_seconds: float = 3.0) -> Probe:
    parsed = urlparse(base_url)
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    return socket_probe(parsed.hostname or "localhost", port, timeout_seconds=timeout_seconds)


class SocketConnectivityObserver(ConnectivityObserver):
    """Señal online/offline basada en un probe TCP al servidor.

    ``is_online()`` sólo mide. ``poll()`` mide, guarda la lectura y notifica a los
    suscriptores cuando cambia respecto a la anterior. Sólo el bucle de sondeo del
    scheduler llama a ``poll()``.
    """

    def __init__(self, probe: Probe) -> None:
        self._probe = probe
        self._lock = threading.Lock()
        self._listeners: list[ConnectivityListener] = []
        self._online: bool | None = None

    def is_online(self) -> bool:
        return self._probe()

    def poll(self) -> bool:
        online = self._probe()
        self._update(online)
        return online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _update(self, online: bool) -> None:
        with self._lock:
            changed = self._online is not None and self._online != online
            self._online = online
            listeners = list(self._listeners)
        if not changed:
            return
        logger.info("connectivity_changed online=%s", online)
        for listener in listeners:
            try:
                listener(online)
            except Exception:  # noqa: BLE001
                logger.exception("connectivity_listener_failed")
