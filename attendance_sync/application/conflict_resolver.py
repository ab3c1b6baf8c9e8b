from __future__ import annotations

import logging

from attendance_sync.application.pull_sync import PullSynchronizer
from attendance_sync.core.observability import log_event
from attendance_sync.domain.models import Identity
from attendance_sync.domain.sync_models import ConflictCheck, PullResult
from attendance_sync.domain.tables import IDENTITIES
from attendance_sync.infrastructure.local_store import LocalStore

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Detecta si el dispositivo guarda datos de otra identidad.

    El resolver nunca decide: expone las dos salidas y el llamante elige.
    """

    def __init__(self, store: LocalStore, pull: PullSynchronizer) -> None:
        self._store = store
        self._pull = pull

    def check_conflict(self, incoming_identity_id: str) -> ConflictCheck:
        counts = self._store.owner_counts()
        if counts.get(incoming_identity_id, 0) > 0:
            return ConflictCheck(has_conflict=False)
        others = [owner for owner, total in counts.items() if owner != incoming_identity_id and total > 0]
        if not others:
            return ConflictCheck(has_conflict=False)
        existing_id = others[0]
        return ConflictCheck(
            has_conflict=True,
            existing_identity_id=existing_id,
            existing_identity_label=self._label_for(existing_id),
        )

    def discard_and_reload(self, incoming_identity_id: str) -> PullResult:
        """Borra todo el espejo local y el ledger y descarga los datos de la nueva identidad."""
        self._store.wipe()
        log_event(logger, "conflict_discarded_local_data", {"incoming_identity_id": incoming_identity_id})
        return self._pull.pull(incoming_identity_id, force=True)

    def keep_existing(self) -> None:
        # Las próximas escrituras quedarán mezcladas con datos de otra identidad.
        log_event(logger, "conflict_kept_foreign_data", {})
        logger.warning("conflict_keep_existing_foreign_data")

    def _label_for(self, identity_id: str) -> str:
        row = self._store.get_row(IDENTITIES.name, identity_id)
        if row is None:
            return identity_id
        identity = Identity(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            role=row["role"],
        )
        return identity.display_name
