"""Job registry over persisted SyncProgress rows.

One row per (actor, sync type) is the only channel between a background sync
and callers polling its status. ``compare_and_set`` moves a row between states
only when its current status matches, which is how terminal transitions are
written. ``mark_syncing`` does not check the current status, so a
second concurrent start for the same actor is not rejected.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import SyncProgress, SyncStatus, SyncType

UNIFIED_SYNC: SyncType = "unified_sync"
MATTER_DETAILS: SyncType = "matter_details"

TERMINAL_STATUSES: frozenset[SyncStatus] = frozenset({"completed", "failed"})


class JobRegistry:
    def __init__(self, db: DB) -> None:
        self._db = db

    def get(self, actor_id: str, sync_type: SyncType) -> SyncProgress | None:
        return self._db.get_sync_progress(actor_id, sync_type)

    def mark_syncing(self, actor_id: str, sync_type: SyncType, **fields: Any) -> SyncProgress:
        """Upsert the row to ``syncing`` and clear any previous failure reason."""
        return self._db.upsert_sync_progress(
            actor_id, sync_type, status="syncing", failure_reason=None, **fields
        )

    def update(self, actor_id: str, sync_type: SyncType, **fields: Any) -> SyncProgress:
        return self._db.upsert_sync_progress(actor_id, sync_type, **fields)

    def compare_and_set(
        self,
        actor_id: str,
        sync_type: SyncType,
        *,
        expected: SyncStatus | Iterable[SyncStatus],
        new_status: SyncStatus,
        **fields: Any,
    ) -> bool:
        """Set ``new_status`` only if the row's status is one of ``expected``."""
        allowed = [expected] if isinstance(expected, str) else list(expected)
        return self._db.compare_and_set_sync_status(
            actor_id, sync_type, expected=allowed, new_status=new_status, **fields
        )

    def complete(self, actor_id: str, sync_type: SyncType, **fields: Any) -> bool:
        return self.compare_and_set(
            actor_id,
            sync_type,
            expected="syncing",
            new_status="completed",
            failure_reason=None,
            **fields,
        )

    def fail(self, actor_id: str, sync_type: SyncType, reason: str, **fields: Any) -> bool:
        return self.compare_and_set(
            actor_id,
            sync_type,
            expected="syncing",
            new_status="failed",
            failure_reason=reason,
            **fields,
        )
