from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
import time
from typing import Any, TypeVar

from sqlalchemy import create_engine, func, select, text, update
from sqlalchemy.orm import Session, sessionmaker

from docketsync.adapters.db.models import (
    Base,
    Category,
    Contact,
    Matter,
    MatterStatus,
    MatterStatusHistory,
    MatterType,
    SyncProgress,
    SyncSettings,
    Team,
    utcnow,
)

M = TypeVar("M", bound=Base)

# Fields staff may edit on a matter; editing any of them makes the row sticky.
MATTER_EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "matter_type",
        "status",
        "client_name",
        "assignees",
        "deadline",
        "archived",
    }
)


class BatchTimeoutError(RuntimeError):
    """Raised when a batch transaction runs past its timeout."""


@dataclass(frozen=True)
class MatterRef:
    """Lightweight handle on a local matter for per-record detail syncing."""

    matter_id: int
    remote_id: int
    is_edited: bool
    status: str | None


class DB:
    """Database service layer providing ORM models and helper methods."""

    def __init__(self, url: str) -> None:
        """Initialize database connection.

        Args:
            url: Database URL (e.g., "sqlite:///docketsync.db")
        """
        self._url = url
        self._engine = create_engine(url, echo=False)
        self._session_factory = sessionmaker(
            bind=self._engine, class_=Session, expire_on_commit=False
        )

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    def create_schema(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self._engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def batch_transaction(self, *, timeout_seconds: float = 30.0) -> Iterator[Session]:
        """Run a batch of writes as one transaction bounded by ``timeout_seconds``.

        On PostgreSQL the limit is also pushed down as a statement timeout.
        A batch that finishes past its deadline is rolled back.

        Raises:
            BatchTimeoutError: If the batch exceeded its timeout
        """
        started = time.monotonic()
        with self.session() as session:  # type: Session
            if self.dialect == "postgresql":
                session.execute(
                    text("SET LOCAL statement_timeout = :ms"),
                    {"ms": int(timeout_seconds * 1000)},
                )
            yield session
            session.flush()
            elapsed = time.monotonic() - started
            if elapsed > timeout_seconds:
                raise BatchTimeoutError(
                    f"Batch transaction took {elapsed:.1f}s "
                    f"(timeout {timeout_seconds:.1f}s)"
                )

    # Typed reads ---------------------------------------------------------

    def find_by_remote_ids(
        self,
        session: Session,
        model: type[M],
        remote_ids: Iterable[int],
    ) -> dict[int, M]:
        """Return rows of ``model`` keyed by remote id, within ``session``."""
        ids = list(set(remote_ids))
        if not ids:
            return {}
        remote_col = getattr(model, "remote_id")
        rows = session.scalars(select(model).where(remote_col.in_(ids))).all()
        return {row.remote_id: row for row in rows}  # type: ignore[attr-defined]

    def _fetch_all(self, model: type[M]) -> list[M]:
        with self.session() as session:  # type: Session
            rows = list(session.scalars(select(model)).all())
            for row in rows:
                session.expunge(row)
            return rows

    def fetch_teams(self) -> list[Team]:
        return self._fetch_all(Team)

    def fetch_contacts(self) -> list[Contact]:
        return self._fetch_all(Contact)

    def fetch_matter_types(self) -> list[MatterType]:
        return self._fetch_all(MatterType)

    def fetch_matter_statuses(self) -> list[MatterStatus]:
        return self._fetch_all(MatterStatus)

    def fetch_categories(self) -> list[Category]:
        return self._fetch_all(Category)

    def count_matters(self, actor_id: str | None = None) -> int:
        with self.session() as session:  # type: Session
            query = select(func.count()).select_from(Matter)
            if actor_id is not None:
                query = query.where(Matter.actor_id == actor_id)
            return int(session.scalar(query) or 0)

    def count_matter_types(self) -> int:
        with self.session() as session:  # type: Session
            return int(session.scalar(select(func.count()).select_from(MatterType)) or 0)

    def get_matter_by_remote_id(self, remote_id: int) -> Matter | None:
        with self.session() as session:  # type: Session
            matter = session.scalars(
                select(Matter).where(Matter.remote_id == remote_id)
            ).first()
            if matter:
                session.expunge(matter)
            return matter

    def list_matters(self, actor_id: str | None = None) -> list[Matter]:
        with self.session() as session:  # type: Session
            query = select(Matter).order_by(Matter.remote_id)
            if actor_id is not None:
                query = query.where(Matter.actor_id == actor_id)
            matters = list(session.scalars(query).all())
            for matter in matters:
                session.expunge(matter)
            return matters

    def list_status_history(self, matter_id: int) -> list[MatterStatusHistory]:
        with self.session() as session:  # type: Session
            rows = list(
                session.scalars(
                    select(MatterStatusHistory)
                    .where(MatterStatusHistory.matter_id == matter_id)
                    .order_by(MatterStatusHistory.history_id)
                ).all()
            )
            for row in rows:
                session.expunge(row)
            return rows

    def list_matters_for_details(
        self,
        actor_id: str,
        *,
        below_remote_id: int | None = None,
    ) -> list[MatterRef]:
        """List an actor's matters newest remote id first.

        Args:
            actor_id: Owner of the matters
            below_remote_id: When resuming, only matters with a smaller remote id
        """
        with self.session() as session:  # type: Session
            query = (
                select(Matter.matter_id, Matter.remote_id, Matter.is_edited, Matter.status)
                .where(Matter.actor_id == actor_id)
                .order_by(Matter.remote_id.desc())
            )
            if below_remote_id is not None:
                query = query.where(Matter.remote_id < below_remote_id)
            return [
                MatterRef(
                    matter_id=row.matter_id,
                    remote_id=row.remote_id,
                    is_edited=row.is_edited,
                    status=row.status,
                )
                for row in session.execute(query)
            ]

    # Writes used by the sync engine ---------------------------------------

    def get_or_create_category(self, session: Session, name: str) -> Category:
        category = session.scalars(select(Category).where(Category.name == name)).first()
        if category is None:
            category = Category(name=name)
            session.add(category)
            session.flush()
        return category

    def record_status_change(
        self,
        session: Session,
        matter_id: int,
        status: str,
        *,
        source: str = "sync",
    ) -> None:
        session.add(MatterStatusHistory(matter_id=matter_id, status=status, source=source))

    def update_matter_if_unedited(
        self,
        matter_id: int,
        fields: dict[str, Any],
    ) -> bool:
        """Apply synced fields to a matter unless staff have edited it.

        The edit flag is re-checked inside the write transaction. A status
        change is recorded in the matter's history.

        Returns:
            True if the row was written, False if it was skipped
        """
        with self.session() as session:  # type: Session
            matter = session.get(Matter, matter_id)
            if matter is None or matter.is_edited:
                return False

            new_status = fields.get("status")
            if new_status and matter.status and matter.status != new_status:
                self.record_status_change(session, matter.matter_id, new_status)

            for key, value in fields.items():
                setattr(matter, key, value)
            now = utcnow()
            matter.last_synced_at = now
            matter.updated_at = now
            return True

    # Manual edits ---------------------------------------------------------

    def apply_manual_edit(
        self,
        matter_id: int,
        changes: dict[str, Any],
        *,
        edited_by: str,
    ) -> Matter:
        """Apply a staff edit and make the matter sticky against sync.

        Raises:
            ValueError: If the matter does not exist or a field is not editable
        """
        unknown = set(changes) - MATTER_EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        with self.session() as session:  # type: Session
            matter = session.get(Matter, matter_id)
            if matter is None:
                raise ValueError(f"Matter {matter_id} not found")

            new_status = changes.get("status")
            if new_status and new_status != matter.status:
                self.record_status_change(
                    session, matter.matter_id, new_status, source="manual"
                )

            for key, value in changes.items():
                setattr(matter, key, value)
            now = utcnow()
            matter.is_edited = True
            matter.edited_by = edited_by
            matter.edited_at = now
            matter.updated_at = now
            session.flush()
            session.expunge(matter)
            return matter

    def clear_manual_edit(self, matter_id: int) -> bool:
        """Hand a matter back to sync. Returns False if it does not exist."""
        with self.session() as session:  # type: Session
            result = session.execute(
                update(Matter)
                .where(Matter.matter_id == matter_id)
                .values(is_edited=False, edited_by=None, edited_at=None)
            )
            return bool(result.rowcount)  # type: ignore[attr-defined]

    # Sync progress --------------------------------------------------------

    def get_sync_progress(self, actor_id: str, sync_type: str) -> SyncProgress | None:
        with self.session() as session:  # type: Session
            progress = session.scalars(
                select(SyncProgress).where(
                    SyncProgress.actor_id == actor_id,
                    SyncProgress.sync_type == sync_type,
                )
            ).first()
            if progress:
                session.expunge(progress)
            return progress

    def upsert_sync_progress(
        self,
        actor_id: str,
        sync_type: str,
        **fields: Any,
    ) -> SyncProgress:
        """Create the progress row on first use, otherwise update it in place."""
        with self.session() as session:  # type: Session
            progress = session.scalars(
                select(SyncProgress).where(
                    SyncProgress.actor_id == actor_id,
                    SyncProgress.sync_type == sync_type,
                )
            ).first()
            if progress is None:
                progress = SyncProgress(
                    actor_id=actor_id,
                    sync_type=sync_type,
                    status=fields.pop("status", "idle"),
                    total_processed=fields.pop("total_processed", 0),
                    total_failed=fields.pop("total_failed", 0),
                )
                session.add(progress)
            for key, value in fields.items():
                setattr(progress, key, value)
            progress.updated_at = utcnow()
            session.flush()
            session.refresh(progress)
            session.expunge(progress)
            return progress

    def compare_and_set_sync_status(
        self,
        actor_id: str,
        sync_type: str,
        *,
        expected: Iterable[str],
        new_status: str,
        **fields: Any,
    ) -> bool:
        """Atomically move a progress row to ``new_status`` if its status is expected.

        Returns:
            True if the row was updated, False if its status did not match
        """
        values = {**fields, "status": new_status, "updated_at": utcnow()}
        with self.session() as session:  # type: Session
            result = session.execute(
                update(SyncProgress)
                .where(
                    SyncProgress.actor_id == actor_id,
                    SyncProgress.sync_type == sync_type,
                    SyncProgress.status.in_(list(expected)),
                )
                .values(**values)
            )
            return bool(result.rowcount)  # type: ignore[attr-defined]

    # Sync settings --------------------------------------------------------

    def get_sync_settings(self, actor_id: str) -> SyncSettings | None:
        with self.session() as session:  # type: Session
            settings = session.scalars(
                select(SyncSettings).where(SyncSettings.actor_id == actor_id)
            ).first()
            if settings:
                session.expunge(settings)
            return settings

    def touch_last_sync(self, actor_id: str, at: datetime | None = None) -> SyncSettings:
        """Record a successful sync time, creating default settings if needed."""
        with self.session() as session:  # type: Session
            settings = session.scalars(
                select(SyncSettings).where(SyncSettings.actor_id == actor_id)
            ).first()
            if settings is None:
                settings = SyncSettings(actor_id=actor_id)
                session.add(settings)
            now = utcnow()
            settings.last_sync_at = at or now
            settings.updated_at = now
            session.flush()
            session.refresh(settings)
            session.expunge(settings)
            return settings
