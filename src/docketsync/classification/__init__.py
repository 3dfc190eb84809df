"""Status classification for synced matters."""

from __future__ import annotations

from docketsync.classification.activity import (
    activity_status_label,
    is_matter_active,
    matter_activity_status,
)
from docketsync.classification.categories import categorize_status, count_by_category
from docketsync.classification.status_classifier import (
    StatusClassification,
    classify,
    is_overdue,
    is_stale,
)

__all__ = [
    "StatusClassification",
    "activity_status_label",
    "categorize_status",
    "classify",
    "count_by_category",
    "is_matter_active",
    "is_overdue",
    "is_stale",
    "matter_activity_status",
]
