"""Coarse status groups used by dashboard reports.

Unlike ``classify``, the first matching group wins.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from typing import Literal

ReportCategory = Literal[
    "pending", "filed", "rfe", "interview", "approved", "denied", "closed", "other"
]

STATUS_CATEGORIES: dict[ReportCategory, list[str]] = {
    "pending": ["pending", "drafting", "preparing", "waiting", "processing"],
    "filed": ["filed", "submitted", "case filed"],
    "rfe": ["request for evidence", "rfe received", "rfe filed"],
    "interview": ["interview", "biometrics", "oath ceremony"],
    "approved": ["approved", "granted", "card received", "visa granted"],
    "denied": ["denied", "case denied", "rejected"],
    "closed": ["closed"],
}

CATEGORY_LABELS: dict[ReportCategory, str] = {
    "pending": "Pending/Drafting",
    "filed": "Filed",
    "rfe": "RFE",
    "interview": "Interview",
    "approved": "Approved",
    "denied": "Denied",
    "closed": "Closed",
    "other": "Other",
}


def categorize_status(status: str | None) -> ReportCategory:
    if not status:
        return "other"
    lowered = status.lower()
    for category, keywords in STATUS_CATEGORIES.items():
        if any(keyword in lowered for keyword in keywords):
            return category
    return "other"


def category_label(category: ReportCategory) -> str:
    return CATEGORY_LABELS[category]


def count_by_category(statuses: Iterable[str | None]) -> Counter[ReportCategory]:
    return Counter(categorize_status(status) for status in statuses)
