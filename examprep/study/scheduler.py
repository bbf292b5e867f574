"""
Performance-bucketed Spaced Repetition Scheduler.

Turns a review performance in [0, 1] into the next review interval:

    [0.8, 1.0]  excellent  interval doubles (cap 365 days)
    [0.6, 0.8)  good       interval grows by half (cap 180 days)
    [0.4, 0.6)  fair       interval unchanged
    [0.0, 0.4)  poor       interval halves (floor, at least 1 day)

A difficulty nudge follows: hard items come back a day sooner, easy items a
day later. The very first review of an item always schedules 1 day out.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from numbers import Real

from loguru import logger

from examprep.config import Settings, get_settings
from examprep.core.exceptions import InvalidPerformance
from examprep.core.models import Difficulty, ReviewRecord


def validate_performance(performance: object, what: str = "performance") -> float:
    """Return ``performance`` as a float in [0, 1] or raise InvalidPerformance."""
    if isinstance(performance, bool) or not isinstance(performance, Real):
        raise InvalidPerformance(f"{what} must be a number, got {performance!r}")
    value = float(performance)
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InvalidPerformance(f"{what} must be within [0, 1], got {performance!r}")
    return value


class ReviewScheduler:
    """
    Computes the next ReviewRecord for an item.

    Stateless: the same previous record, performance, difficulty and clock
    reading always produce the same record.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize scheduler with configurable bucket thresholds.

        Args:
            settings: Engine settings (uses the cached global settings if None)
        """
        self.settings = settings or get_settings()

    def next_interval(
        self,
        previous_interval: int | None,
        performance: float,
        difficulty: Difficulty = Difficulty.MEDIUM,
    ) -> int:
        """
        Calculate the interval (days) that follows a review.

        Args:
            previous_interval: Interval of the item's last review, None if never reviewed
            performance: Recall quality in [0, 1]
            difficulty: Item difficulty used for the final nudge

        Returns:
            Interval in whole days, always >= 1
        """
        performance = validate_performance(performance)
        s = self.settings

        if previous_interval is None:
            return max(1, s.review_first_interval)

        prev = max(1, int(previous_interval))
        if performance >= s.review_excellent_threshold:
            interval = min(math.ceil(prev * s.review_excellent_multiplier), s.review_excellent_max_interval)
        elif performance >= s.review_good_threshold:
            interval = min(math.ceil(prev * s.review_good_multiplier), s.review_good_max_interval)
        elif performance >= s.review_fair_threshold:
            interval = prev
        else:
            interval = max(1, math.floor(prev * s.review_poor_multiplier))

        if difficulty == Difficulty.HARD:
            interval = max(1, interval - 1)
        elif difficulty == Difficulty.EASY:
            interval = interval + 1

        return interval

    def schedule(
        self,
        previous: ReviewRecord | None,
        performance: float,
        difficulty: Difficulty,
        now: datetime,
        time_spent_seconds: float = 0.0,
    ) -> ReviewRecord:
        """
        Produce the ReviewRecord for a new review.

        Args:
            previous: The item's most recent review, or None
            performance: Recall quality in [0, 1]
            difficulty: Item difficulty
            now: Review timestamp (UTC)
            time_spent_seconds: Time the learner spent on the review

        Returns:
            New immutable ReviewRecord with next_review_at = now + interval
        """
        performance = validate_performance(performance)
        interval = self.next_interval(
            previous.interval_days if previous else None,
            performance,
            Difficulty(difficulty),
        )
        record = ReviewRecord(
            interval_days=interval,
            next_review_at=now + timedelta(days=interval),
            performance=performance,
            reviewed_at=now,
            time_spent_seconds=max(0.0, float(time_spent_seconds or 0.0)),
        )
        logger.debug(
            f"Scheduled review: perf={performance:.2f} difficulty={Difficulty(difficulty).value} "
            f"prev={previous.interval_days if previous else None} -> {interval}d"
        )
        return record
