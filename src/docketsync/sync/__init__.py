"""Docketwise to local store synchronization engine."""

from __future__ import annotations

from docketsync.sync.orchestrator import (
    BackgroundSupervisor,
    SyncAccepted,
    SyncOrchestrator,
    SyncStatusView,
    UnifiedSyncResult,
)
from docketsync.sync.phases import PhaseResult
from docketsync.sync.progress import JobRegistry

__all__ = [
    "BackgroundSupervisor",
    "JobRegistry",
    "PhaseResult",
    "SyncAccepted",
    "SyncOrchestrator",
    "SyncStatusView",
    "UnifiedSyncResult",
]
