"""Unified Docketwise sync: three ordered phases run as a supervised task.

``start_sync`` marks the actor's ``unified_sync`` row as syncing, hands the
run to ``BackgroundSupervisor`` and returns at once. Callers learn the outcome
only by polling ``get_sync_status``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime
import time
from typing import Any, Literal

from loguru import logger

from docketsync.adapters.clients.credentials import TokenProvider
from docketsync.adapters.clients.docketwise import DocketwiseClient
from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import utcnow
from docketsync.core.config import SyncConfig
from docketsync.sync.logger import SyncLogger
from docketsync.sync.phases import (
    MatterDetailsPhase,
    MattersListPhase,
    PhaseResult,
    ReferenceDataPhase,
)
from docketsync.sync.progress import MATTER_DETAILS, UNIFIED_SYNC, JobRegistry
from docketsync.sync.upsert import UpsertEngine

CurrentPhase = Literal["starting", "reference_data", "matters_list", "matter_details"]

PHASE_NAMES: dict[CurrentPhase, str] = {
    "starting": "Starting sync",
    "reference_data": "Syncing reference data",
    "matters_list": "Syncing matters",
    "matter_details": "Syncing matter details",
}


def failure_reason(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(frozen=True, slots=True)
class SyncAccepted:
    actor_id: str
    started: bool = True
    message: str = "Sync started in background"


@dataclass
class UnifiedSyncResult:
    actor_id: str
    success: bool
    phases: list[PhaseResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    error: str | None = None

    def phase(self, name: str) -> PhaseResult | None:
        return next((p for p in self.phases if p.phase == name), None)


@dataclass(frozen=True, slots=True)
class ProgressView:
    processed: int = 0
    total: int = 0
    percentage: int = 0


@dataclass(frozen=True, slots=True)
class SyncStatusView:
    """Read-only projection of the persisted sync state for one actor.

    ``current_phase`` is inferred from what is already in the store, so it is
    an approximation rather than a live progress marker. A failed matter
    details row is reported as a failure even when the run itself completed.
    """

    status: str
    is_running: bool
    is_failed: bool
    failure_reason: str | None
    current_phase: CurrentPhase | None
    phase_name: str | None
    progress: ProgressView
    last_sync: datetime | None
    is_connected: bool


class BackgroundSupervisor:
    """Owns background sync tasks and converts crashes into failed progress."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        on_error: Callable[[BaseException], None],
        name: str | None = None,
    ) -> asyncio.Task[None]:
        task = asyncio.create_task(self._guard(coro, on_error), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for every spawned task, including ones spawned meanwhile.

        Tasks are never cancelled. Returns False if ``timeout`` ran out first.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(set(self._tasks), timeout=remaining)
        return True

    @staticmethod
    async def _guard(
        coro: Coroutine[Any, Any, Any], on_error: Callable[[BaseException], None]
    ) -> None:
        try:
            await coro
        except Exception as exc:
            try:
                on_error(exc)
            except Exception:
                logger.exception("Failed to record background task failure")


class SyncOrchestrator:
    """Runs reference data, matters list and matter details syncs in order."""

    def __init__(
        self,
        db: DB,
        client: DocketwiseClient,
        tokens: TokenProvider,
        *,
        config: SyncConfig | None = None,
        supervisor: BackgroundSupervisor | None = None,
        sync_logger: SyncLogger | None = None,
    ) -> None:
        self._db = db
        self._tokens = tokens
        self._registry = JobRegistry(db)
        self._supervisor = supervisor or BackgroundSupervisor()
        self._logger = sync_logger or SyncLogger()

        batch_size = config.batch_size if config else 50
        batch_timeout = config.batch_timeout_seconds if config else 30.0
        details_batch_size = config.details_batch_size if config else 100
        engine = UpsertEngine(
            db,
            batch_size=batch_size,
            batch_timeout_seconds=batch_timeout,
            sync_logger=self._logger,
        )
        self.reference_phase = ReferenceDataPhase(
            db, client, tokens, engine, sync_logger=self._logger
        )
        self.matters_phase = MattersListPhase(
            db, client, tokens, engine, sync_logger=self._logger
        )
        self.details_phase = MatterDetailsPhase(
            db,
            client,
            tokens,
            self._registry,
            batch_size=details_batch_size,
            sync_logger=self._logger,
        )

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def supervisor(self) -> BackgroundSupervisor:
        return self._supervisor

    def start_sync(self, actor_id: str) -> SyncAccepted:
        """Mark the actor's sync as running and schedule it; do not wait for it.

        Must be called from a running event loop.
        """
        self._registry.mark_syncing(actor_id, UNIFIED_SYNC)
        self._supervisor.spawn(
            self.run_sync(actor_id),
            on_error=lambda exc: self._record_crash(actor_id, exc),
            name=f"unified-sync:{actor_id}",
        )
        return SyncAccepted(actor_id=actor_id)

    async def run_sync(self, actor_id: str) -> UnifiedSyncResult:
        """Run all three phases in order and record the terminal state.

        A reference data failure, returned or raised, ends the run as failed.
        Matters list and matter details failures, including exceptions, are
        recorded in the result only and the run still completes.
        """
        started = time.monotonic()
        self._logger.run_start(actor_id)
        self._registry.mark_syncing(actor_id, UNIFIED_SYNC)
        try:
            result = await self._run_phases(actor_id)
        except Exception as exc:
            self._record_crash(actor_id, exc)
            raise
        result.duration_seconds = time.monotonic() - started
        self._logger.run_complete(actor_id, result.success, result.duration_seconds)
        return result

    async def _run_phases(self, actor_id: str) -> UnifiedSyncResult:
        phases: list[PhaseResult] = []

        reference = await self._run_phase(self.reference_phase, actor_id)
        phases.append(reference)
        if not reference.success:
            reason = reference.error or reference.message or "Reference data sync failed"
            self._logger.phase_failed(reference.phase, reason, fatal=True)
            self._registry.fail(
                actor_id,
                UNIFIED_SYNC,
                reason,
                total_processed=reference.processed,
                total_failed=reference.failed,
            )
            return UnifiedSyncResult(
                actor_id=actor_id, success=False, phases=phases, error=reason
            )

        for phase in (self.matters_phase, self.details_phase):
            try:
                outcome = await self._run_phase(phase, actor_id)
            except Exception as exc:
                reason = failure_reason(exc)
                self._logger.phase_crashed(phase.name, reason)
                phases.append(PhaseResult.failure(phase.name, reason))
                continue
            phases.append(outcome)
            if not outcome.success:
                self._logger.phase_failed(
                    outcome.phase, outcome.error or outcome.message, fatal=False
                )

        self._registry.complete(
            actor_id,
            UNIFIED_SYNC,
            total_processed=sum(p.processed for p in phases),
            total_failed=sum(p.failed for p in phases),
            last_sync_date=utcnow(),
        )
        return UnifiedSyncResult(
            actor_id=actor_id,
            success=all(p.success for p in phases),
            phases=phases,
        )

    async def _run_phase(
        self,
        phase: ReferenceDataPhase | MattersListPhase | MatterDetailsPhase,
        actor_id: str,
    ) -> PhaseResult:
        self._logger.phase_start(phase.name)
        result = await phase.run(actor_id)
        if result.success:
            self._logger.phase_complete(
                result.phase, result.created, result.updated, result.skipped, result.failed
            )
        return result

    def _record_crash(self, actor_id: str, exc: BaseException) -> None:
        reason = failure_reason(exc)
        if self._registry.fail(actor_id, UNIFIED_SYNC, reason):
            self._logger.run_crashed(actor_id, reason)

    def get_sync_status(self, actor_id: str) -> SyncStatusView:
        """Project the persisted progress rows into a status view."""
        unified = self._registry.get(actor_id, UNIFIED_SYNC)
        details = self._registry.get(actor_id, MATTER_DETAILS)
        settings = self._db.get_sync_settings(actor_id)

        status = unified.status if unified else "idle"
        details_running = details is not None and details.status == "syncing"
        is_running = status == "syncing" or details_running

        # The unified run completes even when the details phase fails.
        unified_failed = not is_running and status == "failed"
        details_failed = (
            not is_running and details is not None and details.status == "failed"
        )
        reason: str | None = None
        if unified_failed and unified is not None:
            reason = unified.failure_reason
        elif details_failed and details is not None:
            reason = details.failure_reason

        current_phase: CurrentPhase | None = None
        progress = ProgressView()
        if details is not None and (
            details_running or (details_failed and not unified_failed)
        ):
            current_phase = "matter_details"
            total = self._db.count_matters(actor_id)
            processed = details.total_processed
            percentage = min(100, round(processed / total * 100)) if total else 0
            progress = ProgressView(processed=processed, total=total, percentage=percentage)
        elif status == "syncing":
            if self._db.count_matters(actor_id) > 0:
                current_phase = "matters_list"
            elif self._db.count_matter_types() > 0:
                current_phase = "reference_data"
            else:
                current_phase = "starting"

        return SyncStatusView(
            status="syncing" if is_running else status,
            is_running=is_running,
            is_failed=unified_failed or details_failed,
            failure_reason=reason,
            current_phase=current_phase,
            phase_name=PHASE_NAMES[current_phase] if current_phase else None,
            progress=progress,
            last_sync=settings.last_sync_at if settings else None,
            is_connected=self._tokens.get_token() is not None,
        )
