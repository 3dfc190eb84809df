from __future__ import annotations

from datetime import datetime
from typing import Literal, Protocol

from docketsync.classification.status_classifier import (
    DEFAULT_STALE_DAYS,
    classify,
    days_since,
)

MatterActivityStatus = Literal["active", "stale", "archived"]

ACTIVITY_STALE_DAYS = 10

ACTIVITY_LABELS: dict[MatterActivityStatus, str] = {
    "active": "Active",
    "stale": "Stale",
    "archived": "Archived",
}


class MatterLike(Protocol):
    archived: bool
    closed_at: datetime | None
    status: str | None
    remote_updated_at: datetime | None
    updated_at: datetime


def is_matter_active(
    status: str | None,
    last_updated: datetime | None,
    stale_days: int = DEFAULT_STALE_DAYS,
    *,
    now: datetime | None = None,
) -> bool:
    """Active = the status says work is ongoing and the matter is not stale."""
    classification = classify(status)
    if classification.is_final:
        return False
    if last_updated is not None and days_since(last_updated, now) > stale_days:
        return False
    return classification.is_active


def matter_activity_status(
    matter: MatterLike,
    stale_days: int = ACTIVITY_STALE_DAYS,
    *,
    now: datetime | None = None,
) -> MatterActivityStatus:
    """Archived if flagged, closed or completed; stale if not updated recently."""
    if matter.archived or matter.closed_at is not None:
        return "archived"
    if classify(matter.status).is_completed:
        return "archived"

    last_update = matter.remote_updated_at or matter.updated_at
    if last_update is not None and days_since(last_update, now) > stale_days:
        return "stale"
    return "active"


def activity_status_label(status: MatterActivityStatus) -> str:
    return ACTIVITY_LABELS[status]
