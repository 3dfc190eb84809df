"""Business classification of Docketwise workflow status labels.

Labels are free text configured per firm ("RFE Received", "Case Filed", ...).
``classify`` runs an ordered list of keyword rules into one accumulator.
Order matters: the pending and processing rules only fire when an earlier
rule has not already marked the status completed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Literal

StatusCategory = Literal[
    "closed",
    "completed",
    "approved",
    "denied",
    "drafting",
    "rfe",
    "pending",
    "unknown",
]

DEFAULT_STALE_DAYS = 30

CLOSED_KEYWORDS = ["closed", "card received", "beneficiary arrived"]
FILED_KEYWORDS = ["filed", "case filed", "submitted", "request has been submitted"]
APPROVED_KEYWORDS = [
    "approved",
    "granted",
    "case approved",
    "visa granted",
    "immigrant visa approved",
    "certificate received",
]
DENIED_KEYWORDS = ["denied", "case denied", "rejected"]
DRAFTING_KEYWORDS = [
    "drafting",
    "preparing",
    "prepare",
    "document collection",
    "case evaluation",
]
RFE_KEYWORDS = ["request for evidence", "rfe"]
PENDING_KEYWORDS = ["pending", "waiting", "scheduled"]
PROCESSING_KEYWORDS = ["nvc processing", "interview", "hearing", "processing"]


@dataclass(slots=True)
class StatusClassification:
    is_filed: bool = False
    is_approved: bool = False
    is_denied: bool = False
    is_rfe: bool = False
    is_rfe_filed: bool = False
    is_pending: bool = False
    is_drafting: bool = False
    is_closed: bool = False
    is_active: bool = False
    is_completed: bool = False
    category: StatusCategory = "unknown"

    @property
    def is_final(self) -> bool:
        """Closed, approved or denied: nothing left to do on the matter."""
        return self.is_closed or self.is_approved or self.is_denied


def _has_any(label: str, keywords: list[str]) -> bool:
    return any(keyword in label for keyword in keywords)


def _is_rfe(label: str) -> bool:
    if not _has_any(label, RFE_KEYWORDS):
        return False
    return "received" in label or _is_rfe_response_filed(label)


def _is_rfe_response_filed(label: str) -> bool:
    return "filed" in label and "response" in label


def _apply_closed(c: StatusClassification, label: str) -> None:
    c.is_closed = True
    c.is_completed = True
    c.category = "closed"
    c.is_active = False


def _apply_filed(c: StatusClassification, label: str) -> None:
    c.is_filed = True
    c.is_completed = True
    c.category = "completed"
    c.is_active = False


def _apply_approved(c: StatusClassification, label: str) -> None:
    c.is_approved = True
    c.is_completed = True
    c.category = "approved"
    c.is_active = False


def _apply_denied(c: StatusClassification, label: str) -> None:
    c.is_denied = True
    c.is_completed = True
    c.category = "denied"
    c.is_active = False


def _apply_drafting(c: StatusClassification, label: str) -> None:
    c.is_drafting = True
    c.category = "drafting"
    c.is_active = True


def _apply_rfe(c: StatusClassification, label: str) -> None:
    c.is_rfe = True
    c.category = "rfe"
    c.is_active = True
    if _is_rfe_response_filed(label):
        c.is_rfe_filed = True
        c.is_completed = True
        c.is_active = False


def _apply_pending(c: StatusClassification, label: str) -> None:
    if c.is_completed:
        return
    c.is_pending = True
    if c.category == "unknown":
        c.category = "pending"
    c.is_active = True


Rule = tuple[Callable[[str], bool], Callable[[StatusClassification, str], None]]

RULES: list[Rule] = [
    (lambda s: _has_any(s, CLOSED_KEYWORDS) or s == "open", _apply_closed),
    (lambda s: _has_any(s, FILED_KEYWORDS), _apply_filed),
    (lambda s: _has_any(s, APPROVED_KEYWORDS), _apply_approved),
    (lambda s: _has_any(s, DENIED_KEYWORDS), _apply_denied),
    (lambda s: _has_any(s, DRAFTING_KEYWORDS), _apply_drafting),
    (_is_rfe, _apply_rfe),
    (lambda s: _has_any(s, PENDING_KEYWORDS), _apply_pending),
    (lambda s: _has_any(s, PROCESSING_KEYWORDS), _apply_pending),
]


def classify(label: str | None) -> StatusClassification:
    """Classify a status label; an empty or missing label is ``unknown``."""
    normalized = (label or "").lower().strip()
    classification = StatusClassification()
    if not normalized:
        return classification

    for matches, apply in RULES:
        if matches(normalized):
            apply(classification, normalized)
    return classification


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def days_since(last_updated: datetime, now: datetime | None = None) -> int:
    current = _as_naive_utc(now) if now else datetime.now(UTC).replace(tzinfo=None)
    return (current - _as_naive_utc(last_updated)).days


def is_stale(
    last_updated: datetime | None,
    stale_days: int = DEFAULT_STALE_DAYS,
    *,
    now: datetime | None = None,
) -> bool:
    """True when more than ``stale_days`` whole days have passed since the update."""
    if last_updated is None:
        return False
    return days_since(last_updated, now) > stale_days


def is_overdue(
    deadline: date | datetime | None,
    status_label: str | None,
    *,
    today: date | None = None,
) -> bool:
    """A deadline strictly before today on a matter that is not closed, approved or denied."""
    if deadline is None:
        return False
    if classify(status_label).is_final:
        return False

    deadline_day = deadline.date() if isinstance(deadline, datetime) else deadline
    return deadline_day < (today or date.today())
