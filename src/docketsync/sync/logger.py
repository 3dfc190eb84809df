from __future__ import annotations

import loguru
from loguru import logger


class SyncLogger:
    """Handles all logging for the sync engine with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def run_start(self, actor_id: str) -> None:
        self._logger.bind(actor_id=actor_id).info(
            "Starting unified sync for actor {}", actor_id
        )

    def run_complete(self, actor_id: str, success: bool, duration: float) -> None:
        self._logger.bind(actor_id=actor_id, success=success).info(
            "Unified sync for {} finished in {:.1f}s (success: {})",
            actor_id,
            duration,
            success,
        )

    def run_crashed(self, actor_id: str, reason: str) -> None:
        self._logger.bind(actor_id=actor_id).exception(
            "Unified sync for {} crashed: {}", actor_id, reason
        )

    def phase_start(self, phase: str) -> None:
        self._logger.bind(phase=phase).info("Phase {} starting", phase)

    def phase_complete(
        self, phase: str, created: int, updated: int, skipped: int, failed: int
    ) -> None:
        self._logger.bind(
            phase=phase, created=created, updated=updated, skipped=skipped
        ).info(
            "Phase {} complete: {} created, {} updated, {} skipped, {} failed",
            phase,
            created,
            updated,
            skipped,
            failed,
        )

    def phase_failed(self, phase: str, error: str, *, fatal: bool) -> None:
        self._logger.bind(phase=phase, fatal=fatal).error(
            "Phase {} failed{}: {}",
            phase,
            " (aborting run)" if fatal else "",
            error,
        )

    def phase_crashed(self, phase: str, reason: str) -> None:
        self._logger.bind(phase=phase).exception(
            "Phase {} raised, continuing with the next phase: {}", phase, reason
        )

    def not_connected(self, phase: str) -> None:
        self._logger.bind(phase=phase).warning(
            "Phase {} skipped: Docketwise account not connected", phase
        )

    def maps_loaded(
        self, users: int, clients: int, matter_types: int, statuses: int
    ) -> None:
        self._logger.bind(
            users=users, clients=clients, matter_types=matter_types, statuses=statuses
        ).info(
            "Loaded maps: {} users, {} clients, {} types, {} statuses",
            users,
            clients,
            matter_types,
            statuses,
        )

    def collection_loaded(self, entity: str, count: int) -> None:
        self._logger.bind(entity=entity, count=count).info(
            "Loaded {} {} records from Docketwise", count, entity
        )

    def batch_applied(
        self,
        entity: str,
        batch_num: int,
        total_batches: int,
        created: int,
        updated: int,
        skipped: int,
    ) -> None:
        self._logger.bind(entity=entity, batch=batch_num).info(
            "{} batch {}/{} applied (totals: {} created, {} updated, {} skipped)",
            entity,
            batch_num,
            total_batches,
            created,
            updated,
            skipped,
        )

    def batch_failed(self, entity: str, batch_num: int, size: int) -> None:
        self._logger.bind(entity=entity, batch=batch_num, size=size).exception(
            "{} batch {} ({} records) rolled back", entity, batch_num, size
        )

    def details_skipped_today(self, processed: int) -> None:
        self._logger.bind(processed=processed).info(
            "Matter details already synced today ({} processed), skipping", processed
        )

    def details_resuming(self, last_synced_id: int) -> None:
        self._logger.bind(last_synced_id=last_synced_id).info(
            "Resuming today's matter details sync below remote id {}", last_synced_id
        )

    def details_batch(
        self, batch_num: int, total_batches: int, processed: int, failed: int
    ) -> None:
        self._logger.bind(batch=batch_num, processed=processed, failed=failed).info(
            "Matter details batch {}/{} done ({} processed, {} failed)",
            batch_num,
            total_batches,
            processed,
            failed,
        )

    def details_matter_failed(self, remote_id: int, error: str) -> None:
        self._logger.bind(remote_id=remote_id).warning(
            "Failed to sync details for matter {}: {}", remote_id, error
        )

    def details_rate_limited(self, remote_id: int) -> None:
        self._logger.bind(remote_id=remote_id).error(
            "Rate limit exceeded fetching matter {}, failing details sync", remote_id
        )
