from __future__ import annotations

import secrets
import string
import threading
import time

LOCAL_ID_PREFIX = "local_"
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 9

_lock = threading.Lock()
_last_millis = 0


def _next_millis() -> int:
    global _last_millis
    with _lock:
        now = int(time.time() * 1000)
        if now <= _last_millis:
            now = _last_millis + 1
        _last_millis = now
        return now


def new_local_id() -> str:
    """Identificador temporal para filas creadas sin conexión.

    Los UUID del servidor nunca empiezan por ``local_``, así que ambos espacios
    no se solapan.
    """
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{LOCAL_ID_PREFIX}{_next_millis()}_{suffix}"


def is_local_id(value: str | None) -> bool:
    return bool(value) and str(value).startswith(LOCAL_ID_PREFIX)
