from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Literal

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

SyncStatus = Literal["idle", "syncing", "completed", "failed"]
SyncType = Literal["unified_sync", "matter_details"]


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how TIMESTAMP columns round-trip."""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class Team(Base):
    """Docketwise user (attorney, paralegal, staff) used for assignee names."""

    __tablename__ = "teams"

    team_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    team_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'inHouse'")
    )
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class Contact(Base):
    """Docketwise contact; matters reference one as their client."""

    __tablename__ = "contacts"

    contact_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    remote_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    middle_name: Mapped[str | None] = mapped_column(String, nullable=True)
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[str | None] = mapped_column(String, nullable=True)
    is_lead: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    street_address: Mapped[str | None] = mapped_column(String, nullable=True)
    apartment_number: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    province: Mapped[str | None] = mapped_column(String, nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String, nullable=True)
    country: Mapped[str | None] = mapped_column(String, nullable=True)
    is_edited: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    edited_by: Mapped[str | None] = mapped_column(String, nullable=True)
    edited_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class Category(Base):
    """Matter type category (e.g. Employment, Family)."""

    __tablename__ = "categories"

    category_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    matter_types: Mapped[list[MatterType]] = relationship(
        "MatterType", back_populates="category"
    )


class MatterType(Base):
    """Matter type model."""

    __tablename__ = "matter_types"

    matter_type_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    remote_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.category_id"), nullable=True
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    category: Mapped[Category | None] = relationship(
        "Category", back_populates="matter_types"
    )
    statuses: Mapped[list[MatterStatus]] = relationship(
        "MatterStatus", back_populates="matter_type"
    )


class MatterStatus(Base):
    """Workflow status a matter can be in."""

    __tablename__ = "matter_statuses"

    matter_status_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    remote_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sort: Mapped[int | None] = mapped_column(Integer, nullable=True)
    matter_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("matter_types.matter_type_id"), nullable=True
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    matter_type: Mapped[MatterType | None] = relationship(
        "MatterType", back_populates="statuses"
    )


class Matter(Base):
    """Matter model - synced from Docketwise, editable by staff."""

    __tablename__ = "matters"

    matter_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    actor_id: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    matter_type: Mapped[str | None] = mapped_column(String, nullable=True)
    matter_type_remote_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    status_remote_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    client_name: Mapped[str | None] = mapped_column(String, nullable=True)
    client_remote_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    team_remote_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assignees: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_user_ids: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )  # JSON array stored as TEXT
    archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    opened_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    remote_created_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    remote_updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_edited: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    edited_by: Mapped[str | None] = mapped_column(String, nullable=True)
    edited_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    status_history: Mapped[list[MatterStatusHistory]] = relationship(
        "MatterStatusHistory",
        back_populates="matter",
        cascade="all, delete-orphan",
    )


class MatterStatusHistory(Base):
    """Timeline of status changes observed on a matter."""

    __tablename__ = "matter_status_history"

    history_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    matter_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("matters.matter_id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)  # "sync" | "manual"
    changed_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    matter: Mapped[Matter] = relationship("Matter", back_populates="status_history")


class SyncProgress(Base):
    """Lifecycle of a sync run, one row per (actor, sync type)."""

    __tablename__ = "sync_progress"
    __table_args__ = (
        UniqueConstraint("actor_id", "sync_type", name="uq_sync_progress_actor_type"),
    )

    progress_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    actor_id: Mapped[str] = mapped_column(String, nullable=False)
    sync_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'idle'")
    )
    total_processed: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    total_failed: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_synced_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_sync_date: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class SyncSettings(Base):
    """Per-actor sync preferences and the time of the last good sync."""

    __tablename__ = "sync_settings"

    settings_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    actor_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    polling_interval: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("720")
    )  # minutes
    last_sync_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
