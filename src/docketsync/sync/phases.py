from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import httpx

from docketsync.adapters.clients.credentials import NOT_CONNECTED_MESSAGE, TokenProvider
from docketsync.adapters.clients.docketwise import DocketwiseClient
from docketsync.adapters.clients.errors import DocketwiseAPIError, DocketwiseClientError
from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import utcnow
from docketsync.sync.logger import SyncLogger
from docketsync.sync.progress import MATTER_DETAILS, JobRegistry
from docketsync.sync.reference_maps import ReferenceMaps, load_reference_maps
from docketsync.sync.upsert import (
    ContactMapper,
    MatterMapper,
    MatterStatusMapper,
    MatterTypeMapper,
    TeamMapper,
    TypedStatus,
    UpsertCounts,
    UpsertEngine,
    matter_detail_fields,
)

PhaseName = Literal["reference_data", "matters_list", "matter_details"]

RATE_LIMIT_EXCEEDED = "Rate limit exceeded"
DEFAULT_DETAILS_BATCH_SIZE = 100

# Errors a phase reports as its own failure instead of letting them escape.
REMOTE_ERRORS = (DocketwiseClientError, httpx.HTTPError)


@dataclass(frozen=True, slots=True)
class PhaseResult:
    """Outcome of one sync phase, kept in memory only."""

    phase: PhaseName
    success: bool
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    processed: int = 0
    failed: int = 0
    message: str = ""
    error: str | None = None
    not_connected: bool = False

    @classmethod
    def from_counts(
        cls, phase: PhaseName, total: int, counts: UpsertCounts, message: str
    ) -> PhaseResult:
        return cls(
            phase=phase,
            success=True,
            total=total,
            created=counts.created,
            updated=counts.updated,
            skipped=counts.skipped,
            processed=counts.total,
            failed=counts.failed_records,
            message=message,
        )

    @classmethod
    def disconnected(cls, phase: PhaseName) -> PhaseResult:
        return cls(
            phase=phase,
            success=False,
            message=NOT_CONNECTED_MESSAGE,
            error=NOT_CONNECTED_MESSAGE,
            not_connected=True,
        )

    @classmethod
    def failure(cls, phase: PhaseName, error: str, **counts: int) -> PhaseResult:
        return cls(phase=phase, success=False, error=error, message=error, **counts)


class ReferenceDataPhase:
    """Sync statuses, matter types, users and contacts."""

    name: PhaseName = "reference_data"

    def __init__(
        self,
        db: DB,
        client: DocketwiseClient,
        tokens: TokenProvider,
        engine: UpsertEngine,
        *,
        sync_logger: SyncLogger | None = None,
    ) -> None:
        self._db = db
        self._client = client
        self._tokens = tokens
        self._engine = engine
        self._logger = sync_logger or SyncLogger()

    async def run(self, actor_id: str) -> PhaseResult:
        token = self._tokens.get_token()
        if token is None:
            self._logger.not_connected(self.name)
            return PhaseResult.disconnected(self.name)

        try:
            statuses = await self._client.list_matter_statuses(token)
            matter_types = await self._client.list_matter_types(token)
            users = await self._client.list_users(token)
            contacts = await self._client.list_contacts(token)
        except REMOTE_ERRORS as e:
            return PhaseResult.failure(self.name, str(e) or type(e).__name__)

        # A status listed under a type is written once, with its type link.
        nested_by_id: dict[int, TypedStatus] = {}
        for matter_type in matter_types:
            for status in matter_type.matter_statuses:
                nested_by_id[status.id] = TypedStatus(status, matter_type.id)
        nested_statuses = list(nested_by_id.values())
        standalone_statuses = [
            TypedStatus(s) for s in statuses if s.id not in nested_by_id
        ]
        self._logger.collection_loaded("matter_statuses", len(statuses))
        self._logger.collection_loaded("matter_types", len(matter_types))
        self._logger.collection_loaded("users", len(users))
        self._logger.collection_loaded("contacts", len(contacts))

        # No lookups needed; reference rows only carry their own fields.
        maps = ReferenceMaps()
        counts = UpsertCounts()
        counts.add(
            self._engine.apply_batch(MatterStatusMapper(), standalone_statuses, maps)
        )
        counts.add(self._engine.apply_batch(MatterTypeMapper(), matter_types, maps))
        counts.add(self._engine.apply_batch(MatterStatusMapper(), nested_statuses, maps))
        counts.add(self._engine.apply_batch(TeamMapper(), users, maps))
        counts.add(self._engine.apply_batch(ContactMapper(), contacts, maps))

        self._db.touch_last_sync(actor_id)
        total = len(standalone_statuses) + len(matter_types) + len(nested_statuses)
        total += len(users) + len(contacts)
        return PhaseResult.from_counts(
            self.name, total, counts, f"Synced {counts.total} reference records"
        )


class MattersListPhase:
    """Sync shallow matter fields from the paginated matters collection."""

    name: PhaseName = "matters_list"

    def __init__(
        self,
        db: DB,
        client: DocketwiseClient,
        tokens: TokenProvider,
        engine: UpsertEngine,
        *,
        sync_logger: SyncLogger | None = None,
    ) -> None:
        self._db = db
        self._client = client
        self._tokens = tokens
        self._engine = engine
        self._logger = sync_logger or SyncLogger()

    async def run(self, actor_id: str) -> PhaseResult:
        token = self._tokens.get_token()
        if token is None:
            self._logger.not_connected(self.name)
            return PhaseResult.disconnected(self.name)

        maps = load_reference_maps(self._db)
        self._logger.maps_loaded(
            len(maps.users), len(maps.clients), len(maps.matter_types), len(maps.statuses)
        )

        try:
            matters = await self._client.list_matters(token)
        except REMOTE_ERRORS as e:
            return PhaseResult.failure(self.name, str(e) or type(e).__name__)
        self._logger.collection_loaded("matters", len(matters))

        counts = self._engine.apply_batch(MatterMapper(actor_id), matters, maps)
        return PhaseResult.from_counts(
            self.name,
            len(matters),
            counts,
            f"Synced {counts.total} matters "
            f"({counts.created} created, {counts.updated} updated)",
        )


class MatterDetailsPhase:
    """Fetch each matter individually to fill in assignees and detail fields.

    Runs newest remote id first and persists its position after every batch,
    so an interrupted run resumes where it stopped if restarted the same day.
    A run that already completed today is skipped.
    """

    name: PhaseName = "matter_details"

    def __init__(
        self,
        db: DB,
        client: DocketwiseClient,
        tokens: TokenProvider,
        registry: JobRegistry,
        *,
        batch_size: int = DEFAULT_DETAILS_BATCH_SIZE,
        sync_logger: SyncLogger | None = None,
    ) -> None:
        self._db = db
        self._client = client
        self._tokens = tokens
        self._registry = registry
        self._batch_size = batch_size
        self._logger = sync_logger or SyncLogger()

    async def run(self, actor_id: str) -> PhaseResult:
        token = self._tokens.get_token()
        if token is None:
            self._logger.not_connected(self.name)
            return PhaseResult.disconnected(self.name)

        progress = self._registry.get(actor_id, MATTER_DETAILS)
        today = utcnow().date()
        synced_today = (
            progress is not None
            and progress.last_sync_date is not None
            and progress.last_sync_date.date() == today
        )

        if progress is not None and synced_today and progress.status == "completed":
            self._logger.details_skipped_today(progress.total_processed)
            return PhaseResult(
                phase=self.name,
                success=True,
                processed=progress.total_processed,
                failed=progress.total_failed,
                message="Already synced today",
            )

        below_remote_id: int | None = None
        processed = failed = 0
        if progress is not None and synced_today and progress.last_synced_id:
            below_remote_id = progress.last_synced_id
            processed = progress.total_processed
            failed = progress.total_failed
            self._logger.details_resuming(below_remote_id)
            self._registry.mark_syncing(actor_id, MATTER_DETAILS)
        else:
            self._registry.mark_syncing(
                actor_id,
                MATTER_DETAILS,
                total_processed=0,
                total_failed=0,
                last_synced_id=None,
                last_sync_date=utcnow(),
            )

        try:
            return await self._sync_details(
                actor_id, token, below_remote_id, processed, failed
            )
        except Exception as e:
            self._registry.fail(actor_id, MATTER_DETAILS, str(e) or type(e).__name__)
            raise

    async def _sync_details(
        self,
        actor_id: str,
        token: str,
        below_remote_id: int | None,
        processed: int,
        failed: int,
    ) -> PhaseResult:
        maps = load_reference_maps(self._db)
        matters = self._db.list_matters_for_details(
            actor_id, below_remote_id=below_remote_id
        )
        if not matters:
            self._registry.complete(actor_id, MATTER_DETAILS, last_sync_date=utcnow())
            return PhaseResult(
                phase=self.name,
                success=True,
                processed=processed,
                failed=failed,
                message="All matter details are up to date",
            )

        fetcher = self._client.fetcher
        updated = skipped = 0
        last_synced_id = below_remote_id
        fetched_any = False
        total_batches = (len(matters) + self._batch_size - 1) // self._batch_size

        for index in range(total_batches):
            batch = matters[index * self._batch_size : (index + 1) * self._batch_size]
            for ref in batch:
                if ref.is_edited:
                    skipped += 1
                    processed += 1
                    last_synced_id = ref.remote_id
                    continue

                if fetched_any:
                    await fetcher.pause()
                fetched_any = True

                try:
                    details = await self._client.get_matter(ref.remote_id, token)
                except DocketwiseAPIError as e:
                    if e.rate_limited:
                        self._logger.details_rate_limited(ref.remote_id)
                        self._registry.fail(
                            actor_id,
                            MATTER_DETAILS,
                            RATE_LIMIT_EXCEEDED,
                            last_synced_id=last_synced_id,
                            total_processed=processed,
                            total_failed=failed,
                        )
                        return PhaseResult.failure(
                            self.name,
                            RATE_LIMIT_EXCEEDED,
                            total=len(matters),
                            updated=updated,
                            skipped=skipped,
                            processed=processed,
                            failed=failed,
                        )
                    self._logger.details_matter_failed(ref.remote_id, str(e))
                    failed += 1
                    continue
                except REMOTE_ERRORS as e:
                    self._logger.details_matter_failed(
                        ref.remote_id, str(e) or type(e).__name__
                    )
                    failed += 1
                    continue

                written = self._db.update_matter_if_unedited(
                    ref.matter_id, matter_detail_fields(details, maps)
                )
                if written:
                    updated += 1
                else:
                    skipped += 1
                processed += 1
                last_synced_id = ref.remote_id

            self._registry.update(
                actor_id,
                MATTER_DETAILS,
                last_synced_id=last_synced_id,
                total_processed=processed,
                total_failed=failed,
            )
            self._logger.details_batch(index + 1, total_batches, processed, failed)

        self._registry.complete(
            actor_id,
            MATTER_DETAILS,
            last_sync_date=utcnow(),
            total_processed=processed,
            total_failed=failed,
        )
        return PhaseResult(
            phase=self.name,
            success=True,
            total=len(matters),
            updated=updated,
            skipped=skipped,
            processed=processed,
            failed=failed,
            message=f"Synced details for {updated} matters ({failed} failed)",
        )
