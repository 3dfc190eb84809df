"""Idempotent, edit-aware upserts of Docketwise records into the local store.

Each entity type has an ``EntityMapper`` that knows its model, how to read the
remote id off a payload and which synced fields to write. ``UpsertEngine``
applies records in fixed-size batches, one transaction per batch, and never
writes a row a person has edited.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
import json
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session

from docketsync.adapters.clients.docketwise import (
    DocketwiseContact,
    DocketwiseMatter,
    DocketwiseMatterStatus,
    DocketwiseMatterType,
    DocketwiseUser,
)
from docketsync.adapters.db.facade import DB
from docketsync.adapters.db.models import (
    Base,
    Contact,
    Matter,
    MatterStatus,
    MatterType,
    Team,
    utcnow,
)
from docketsync.sync.logger import SyncLogger
from docketsync.sync.reference_maps import (
    UNTITLED_MATTER,
    ReferenceMaps,
    resolve_assignees,
    resolve_client_name,
    resolve_matter_type,
    resolve_primary_assignee,
    resolve_status,
)

R = TypeVar("R")

DEFAULT_BATCH_SIZE = 50
CONTRACTOR_EMAIL_MARKERS = ("@contractor", "@external")


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize API timestamps to the naive UTC values stored in TIMESTAMP columns."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


@dataclass
class UpsertContext:
    """What a mapper may consult while producing fields for one batch."""

    db: DB
    session: Session
    maps: ReferenceMaps


@dataclass
class UpsertCounts:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed_batches: int = 0
    failed_records: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped

    def add(self, other: UpsertCounts) -> None:
        self.created += other.created
        self.updated += other.updated
        self.skipped += other.skipped
        self.failed_batches += other.failed_batches
        self.failed_records += other.failed_records


class EntityMapper(Generic[R]):
    """Maps one kind of remote payload onto one local model."""

    entity: str = "record"
    model: type[Base]

    def remote_id(self, record: R) -> int:
        return record.id  # type: ignore[attr-defined]

    def fields(self, record: R, ctx: UpsertContext) -> dict[str, Any]:
        raise NotImplementedError

    def on_update(self, row: Any, fields: dict[str, Any], ctx: UpsertContext) -> None:
        """Hook run before synced fields are written onto an existing row."""


class TeamMapper(EntityMapper[DocketwiseUser]):
    entity = "users"
    model = Team

    def fields(self, record: DocketwiseUser, ctx: UpsertContext) -> dict[str, Any]:
        first_name = record.first_name or None
        last_name = record.last_name or None
        full_name = f"{first_name or ''} {last_name or ''}".strip() or None
        email = record.email
        team_type = (
            "contractor"
            if any(marker in email for marker in CONTRACTOR_EMAIL_MARKERS)
            else "inHouse"
        )
        return {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "full_name": full_name or email,
            "team_type": team_type,
            "title": None,
            "is_active": True,
        }


class ContactMapper(EntityMapper[DocketwiseContact]):
    entity = "contacts"
    model = Contact

    def fields(self, record: DocketwiseContact, ctx: UpsertContext) -> dict[str, Any]:
        return {
            "first_name": record.first_name,
            "last_name": record.last_name,
            "middle_name": record.middle_name,
            "company_name": record.company_name,
            "email": record.email,
            "phone": record.phone,
            "type": record.type,
            "is_lead": bool(record.lead),
            "street_address": record.street_address,
            "apartment_number": record.apartment_number,
            "city": record.city,
            "state": record.state,
            "province": record.province,
            "zip_code": record.zip_code,
            "country": record.country,
        }


class MatterTypeMapper(EntityMapper[DocketwiseMatterType]):
    entity = "matter_types"
    model = MatterType

    def fields(self, record: DocketwiseMatterType, ctx: UpsertContext) -> dict[str, Any]:
        fields: dict[str, Any] = {"name": record.name}
        if record.category:
            category = ctx.db.get_or_create_category(ctx.session, record.category)
            fields["category_id"] = category.category_id
        return fields


@dataclass(frozen=True)
class TypedStatus:
    """A status payload plus the remote matter type it was listed under, if any."""

    status: DocketwiseMatterStatus
    matter_type_remote_id: int | None = None

    @property
    def id(self) -> int:
        return self.status.id


class MatterStatusMapper(EntityMapper[TypedStatus]):
    entity = "matter_statuses"
    model = MatterStatus

    def fields(self, record: TypedStatus, ctx: UpsertContext) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "name": record.status.name,
            "duration": record.status.duration,
            "sort": record.status.sort,
        }
        if record.matter_type_remote_id is not None:
            types = ctx.db.find_by_remote_ids(
                ctx.session, MatterType, [record.matter_type_remote_id]
            )
            matter_type = types.get(record.matter_type_remote_id)
            if matter_type is not None:
                fields["matter_type_id"] = matter_type.matter_type_id
        return fields


class MatterMapper(EntityMapper[DocketwiseMatter]):
    """Shallow matter fields as served by the list endpoint.

    Assignees come from the primary attorney only; the details phase fills in
    the full assignee list.
    """

    entity = "matters"
    model = Matter

    def __init__(self, actor_id: str) -> None:
        self._actor_id = actor_id

    def fields(self, record: DocketwiseMatter, ctx: UpsertContext) -> dict[str, Any]:
        fields = matter_common_fields(record, ctx.maps)
        fields.update(
            actor_id=self._actor_id,
            assignees=resolve_primary_assignee(record, ctx.maps),
            remote_user_ids=(
                json.dumps([record.attorney_id]) if record.attorney_id else None
            ),
        )
        return fields

    def on_update(
        self, row: Matter, fields: dict[str, Any], ctx: UpsertContext
    ) -> None:
        new_status = fields.get("status")
        if new_status and row.status and row.status != new_status:
            if row.matter_id is None:
                ctx.session.flush()
            ctx.db.record_status_change(ctx.session, row.matter_id, new_status)


def matter_common_fields(
    record: DocketwiseMatter, maps: ReferenceMaps
) -> dict[str, Any]:
    """Fields shared by the list and details phases."""
    type_id, type_name = resolve_matter_type(record, maps)
    status = resolve_status(record, maps)
    return {
        "title": record.title or UNTITLED_MATTER,
        "description": record.description,
        "matter_type": type_name,
        "matter_type_remote_id": type_id,
        "status": status.name,
        "status_remote_id": status.remote_id,
        "client_name": resolve_client_name(record, maps),
        "client_remote_id": record.client_id,
        "team_remote_id": record.attorney_id,
        "archived": record.archived,
        "opened_at": to_naive_utc(record.opened_at),
        "closed_at": to_naive_utc(record.closed_at),
        "remote_created_at": to_naive_utc(record.created_at),
        "remote_updated_at": to_naive_utc(record.updated_at),
    }


def matter_detail_fields(
    record: DocketwiseMatter, maps: ReferenceMaps
) -> dict[str, Any]:
    """Fields written from the single-matter endpoint, including all assignees."""
    fields = matter_common_fields(record, maps)
    ids, names = resolve_assignees(record, maps)
    fields.update(
        assignees=", ".join(names) if names else None,
        remote_user_ids=json.dumps(ids) if ids else None,
    )
    return fields


class UpsertEngine:
    """Applies remote records to the local store in transactional batches."""

    def __init__(
        self,
        db: DB,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_timeout_seconds: float = 30.0,
        sync_logger: SyncLogger | None = None,
    ) -> None:
        self._db = db
        self._batch_size = batch_size
        self._batch_timeout_seconds = batch_timeout_seconds
        self._logger = sync_logger or SyncLogger()

    def apply_batch(
        self,
        mapper: EntityMapper[R],
        records: Sequence[R],
        maps: ReferenceMaps,
        batch_size: int | None = None,
    ) -> UpsertCounts:
        """Create, update or skip each record, one transaction per batch.

        A failing batch is rolled back, logged and counted in
        ``failed_batches``; later batches still run. Returned counts only
        include batches that committed.
        """
        size = self._batch_size if batch_size is None else batch_size
        if size < 1:
            raise ValueError("batch_size must be >= 1")

        totals = UpsertCounts()
        total_batches = (len(records) + size - 1) // size
        for index in range(total_batches):
            batch = records[index * size : (index + 1) * size]
            try:
                with self._db.batch_transaction(
                    timeout_seconds=self._batch_timeout_seconds
                ) as session:
                    batch_counts = self._apply_one(
                        mapper, batch, UpsertContext(self._db, session, maps)
                    )
            except Exception:
                self._logger.batch_failed(mapper.entity, index + 1, len(batch))
                totals.failed_batches += 1
                totals.failed_records += len(batch)
                continue

            totals.add(batch_counts)
            self._logger.batch_applied(
                mapper.entity,
                index + 1,
                total_batches,
                totals.created,
                totals.updated,
                totals.skipped,
            )
        return totals

    def _apply_one(
        self,
        mapper: EntityMapper[R],
        batch: Sequence[R],
        ctx: UpsertContext,
    ) -> UpsertCounts:
        counts = UpsertCounts()
        existing = self._db.find_by_remote_ids(
            ctx.session, mapper.model, [mapper.remote_id(record) for record in batch]
        )

        for record in batch:
            remote_id = mapper.remote_id(record)
            row = existing.get(remote_id)

            if row is not None and getattr(row, "is_edited", False):
                counts.skipped += 1
                continue

            fields = mapper.fields(record, ctx)
            now = utcnow()
            if row is None:
                row = mapper.model(remote_id=remote_id, last_synced_at=now, **fields)
                ctx.session.add(row)
                existing[remote_id] = row
                counts.created += 1
                continue

            mapper.on_update(row, fields, ctx)
            for key, value in fields.items():
                setattr(row, key, value)
            row.last_synced_at = now  # type: ignore[attr-defined]
            if hasattr(row, "updated_at"):
                row.updated_at = now  # type: ignore[attr-defined]
            counts.updated += 1

        return counts
