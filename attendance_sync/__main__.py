from __future__ import annotations

import logging
import sys

from attendance_sync.bootstrap.logging import install_exception_hook
from attendance_sync.entrypoints.cli_sync import main


install_exception_hook()
try:
    raise SystemExit(main())
except SystemExit:
    raise
except Exception:  # noqa: BLE001
    logging.getLogger("attendance_sync.crash").critical("Unhandled exception", exc_info=True)
    sys.stderr.write("Error inesperado. El detalle queda en crash.log.\n")
    raise SystemExit(2)
