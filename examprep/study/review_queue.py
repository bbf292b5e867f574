"""
Review queue and set statistics.

Due-item priority:
    1 - new items (never reviewed)
    2 - due items whose last performance was below 0.6
    3 - all other due items

Items inside the same priority keep the order of the item set.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from examprep.config import Settings, get_settings
from examprep.core.exceptions import InvalidRequest
from examprep.core.models import LearningItem, SetProgress

from .mastery_estimator import MasteryEstimator

PRIORITY_NEW = 1
PRIORITY_STRUGGLING = 2
PRIORITY_DUE = 3


@dataclass(frozen=True)
class DueItem:
    item: LearningItem
    priority: int
    is_new: bool
    next_review_at: datetime | None = None


@dataclass(frozen=True)
class SetSummary:
    """Per-set study statistics shown on the dashboard."""

    total_items: int
    new_items: int
    due_items: int
    mastered_items: int
    average_mastery: float
    overall_mastery: float
    total_reviews: int
    retention_rate: float  # percent
    review_streak: int
    last_reviewed_at: datetime | None


def select_due_items(
    items: Sequence[LearningItem],
    progress: SetProgress | None,
    now: datetime,
    limit: int | None = None,
    struggling_threshold: float | None = None,
) -> list[DueItem]:
    """
    Pick the items a learner should review now.

    Args:
        items: Items of the set, in set order
        progress: The learner's progress on the set, None if never studied
        now: Current UTC time
        limit: Maximum items to return (None for all)
        struggling_threshold: Last-performance cutoff for priority 2

    Returns:
        Due items sorted by priority, set order within a priority
    """
    if limit is not None and limit < 0:
        raise InvalidRequest(f"limit must be non-negative, got {limit}")
    if struggling_threshold is None:
        struggling_threshold = get_settings().review_good_threshold

    due: list[DueItem] = []
    for item in items:
        history = progress.item(item.id) if progress else None
        last = history.last_review if history else None
        if last is None:
            due.append(DueItem(item=item, priority=PRIORITY_NEW, is_new=True))
        elif last.is_due(now):
            priority = PRIORITY_STRUGGLING if last.performance < struggling_threshold else PRIORITY_DUE
            due.append(DueItem(item=item, priority=priority, is_new=False, next_review_at=last.next_review_at))

    # sorted() is stable, so set order survives within a priority
    due = sorted(due, key=lambda d: d.priority)
    return due if limit is None else due[:limit]


def review_streak(review_times: Iterable[datetime], today: date) -> int:
    """Consecutive days with at least one review, ending today."""
    days = {t.date() for t in review_times}
    streak = 0
    current = today
    while current in days and streak < 365:
        streak += 1
        current -= timedelta(days=1)
    return streak


def summarize_set(
    items: Sequence[LearningItem],
    progress: SetProgress | None,
    now: datetime,
    settings: Settings | None = None,
    estimator: MasteryEstimator | None = None,
) -> SetSummary:
    """Dashboard statistics for one learner's progress on a set."""
    settings = settings or get_settings()
    estimator = estimator or MasteryEstimator(settings)
    window = max(1, settings.mastery_recent_window)

    masteries: list[float] = []
    new_items = due_items = 0
    recent_perf: list[float] = []
    review_times: list[datetime] = []

    for item in items:
        history = progress.item(item.id) if progress else None
        if history is None or not history.reviews:
            new_items += 1
            masteries.append(0.0)
            continue
        masteries.append(estimator.estimate(history.reviews))
        if history.last_review.is_due(now):
            due_items += 1
        recent_perf.extend(r.performance for r in history.reviews[-window:])
        review_times.extend(r.reviewed_at for r in history.reviews)

    retained = sum(1 for p in recent_perf if p >= settings.retention_performance_threshold)
    retention = (retained / len(recent_perf)) * 100 if recent_perf else 0.0

    return SetSummary(
        total_items=len(items),
        new_items=new_items,
        due_items=due_items,
        mastered_items=sum(1 for m in masteries if m >= settings.mastered_item_threshold),
        average_mastery=round(sum(masteries) / len(masteries), 2) if masteries else 0.0,
        overall_mastery=round(progress.overall_mastery, 2) if progress else 0.0,
        total_reviews=progress.total_reviews if progress else 0,
        retention_rate=round(retention, 2),
        review_streak=review_streak(review_times, now.date()),
        last_reviewed_at=progress.last_reviewed_at if progress else None,
    )
