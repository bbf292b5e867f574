"""
Mastery Estimator.

Estimates a 0-100 mastery score from review history:

    mastery = avg(last 5 performances) * 80 + consistency * 20

where consistency = 1 - variance(gaps between reviews, in days) / 30,
clamped to [0, 1]. Histories with fewer than two reviews have no gaps and
therefore no consistency credit. An empty history has mastery 0.

The same estimator serves single items and whole sets; for a set the
reviews of every item are merged into one time-ordered history.
"""

from __future__ import annotations

import statistics
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from enum import Enum

from loguru import logger

from examprep.config import Settings, get_settings
from examprep.core.models import ItemProgress, ReviewRecord, SetProgress

SECONDS_PER_DAY = 86400.0


class MasteryLevel(str, Enum):
    """Display banding of a 0-100 mastery score."""

    BEGINNER = "beginner"  # < 40
    LEARNING = "learning"  # 40-59
    COMPETENT = "competent"  # 60-74
    PROFICIENT = "proficient"  # 75-89
    MASTERED = "mastered"  # 90-100

    @classmethod
    def from_score(cls, score: float) -> MasteryLevel:
        if score < 40:
            return cls.BEGINNER
        elif score < 60:
            return cls.LEARNING
        elif score < 75:
            return cls.COMPETENT
        elif score < 90:
            return cls.PROFICIENT
        return cls.MASTERED

    @property
    def display_name(self) -> str:
        return self.value.title()

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.BEGINNER: "red",
            MasteryLevel.LEARNING: "yellow",
            MasteryLevel.COMPETENT: "blue",
            MasteryLevel.PROFICIENT: "cyan",
            MasteryLevel.MASTERED: "green",
        }[self]


class MasteryEstimator:
    """
    Pure mastery estimation over review histories.

    No state is kept between calls, so estimating the same history twice
    returns the same value.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def estimate(self, reviews: Sequence[ReviewRecord]) -> float:
        """
        Estimate mastery of one time-ordered review history.

        Args:
            reviews: Reviews ordered by ``reviewed_at``

        Returns:
            Mastery score in [0, 100]
        """
        if not reviews:
            return 0.0

        s = self.settings
        window = max(1, s.mastery_recent_window)
        recent = reviews[-window:]
        avg_perf = sum(r.performance for r in recent) / len(recent)

        consistency = self.consistency(reviews)
        mastery = avg_perf * s.mastery_performance_weight + consistency * s.mastery_consistency_weight
        return min(100.0, max(0.0, mastery))

    def consistency(self, reviews: Sequence[ReviewRecord]) -> float:
        """Regularity of review spacing in [0, 1]; 0 with fewer than two reviews."""
        if len(reviews) < 2:
            return 0.0
        gaps = [
            (later.reviewed_at - earlier.reviewed_at).total_seconds() / SECONDS_PER_DAY
            for earlier, later in zip(reviews, reviews[1:])
        ]
        variance = statistics.pvariance(gaps) if len(gaps) > 1 else 0.0
        normalizer = self.settings.mastery_variance_normalizer
        penalty = min(1.0, max(0.0, variance / normalizer)) if normalizer > 0 else 1.0
        return 1.0 - penalty

    def estimate_item(self, progress: ItemProgress | None) -> float:
        if progress is None:
            return 0.0
        return self.estimate(progress.reviews)

    def estimate_set(self, items: Iterable[ItemProgress]) -> float:
        """Mastery over the merged history of every item in a set."""
        merged = sorted(
            (review for item in items for review in item.reviews),
            key=lambda r: r.reviewed_at,
        )
        return self.estimate(merged)

    def rebuild_set_progress(
        self,
        student_id: str,
        set_id: str,
        items: Mapping[str, ItemProgress],
        version: int = 0,
    ) -> SetProgress:
        """
        Recompute the SetProgress view from item histories.

        Args:
            student_id: Owner of the progress
            set_id: Item set the histories belong to
            items: Item histories keyed by item id
            version: Version to stamp on the rebuilt view

        Returns:
            Fresh SetProgress (never patched incrementally)
        """
        total_reviews = sum(p.total_reviews for p in items.values())
        last_times = [p.last_reviewed_at for p in items.values() if p.last_reviewed_at is not None]
        last_reviewed_at: datetime | None = max(last_times) if last_times else None
        overall = self.estimate_set(items.values())

        logger.debug(
            f"Rebuilt set progress {set_id} for {student_id}: "
            f"{total_reviews} reviews, mastery {overall:.1f}"
        )
        return SetProgress(
            student_id=student_id,
            set_id=set_id,
            items=dict(items),
            overall_mastery=overall,
            total_reviews=total_reviews,
            last_reviewed_at=last_reviewed_at,
            version=version,
        )
