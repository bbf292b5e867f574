"""
Difficulty Adapter.

Moves question difficulty one rank at a time based on rolling accuracy over
a learner's most recent practice on a topic (last 10 records, 7-day window):

    accuracy >= 0.8  -> promote (unless already expert)
    accuracy <  0.5  -> demote (unless already easy)
    otherwise        -> unchanged

No recent history leaves the base difficulty untouched.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from loguru import logger

from examprep.config import Settings, get_settings
from examprep.core.models import Difficulty, PracticeRecord
from examprep.study.scheduler import validate_performance


class DifficultyAdapter:
    """Adjusts difficulty from rolling accuracy."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def rolling_accuracy(
        self,
        records: Sequence[PracticeRecord],
        now: datetime,
        topic: str | None = None,
    ) -> float | None:
        """
        Average per-record accuracy over the recent window.

        Args:
            records: Practice history (any order)
            now: Current UTC time
            topic: Restrict to one topic when given

        Returns:
            Accuracy in [0, 1], or None when nothing falls in the window
        """
        s = self.settings
        since = now - timedelta(days=s.difficulty_window_days)
        recent = sorted(
            (
                r
                for r in records
                if since <= r.recorded_at <= now
                and r.total_questions > 0
                and (topic is None or r.topic == topic)
            ),
            key=lambda r: r.recorded_at,
        )[-s.difficulty_history_limit :]

        if not recent:
            return None
        return sum(r.accuracy for r in recent) / len(recent)

    def adjust(self, base: Difficulty | str, accuracy: float | None) -> Difficulty:
        """
        Apply one adaptation step.

        Args:
            base: Current difficulty
            accuracy: Rolling accuracy in [0, 1], None when there is no history

        Returns:
            Adjusted difficulty, at most one rank away from ``base``
        """
        base = Difficulty(base)
        if accuracy is None:
            return base
        accuracy = validate_performance(accuracy, "rolling accuracy")

        s = self.settings
        if accuracy >= s.difficulty_promote_accuracy:
            adjusted = base.promote()
        elif accuracy < s.difficulty_demote_accuracy:
            adjusted = base.demote()
        else:
            adjusted = base

        if adjusted != base:
            logger.debug(f"Difficulty {base.value} -> {adjusted.value} (accuracy {accuracy:.2f})")
        return adjusted

    def adapt(
        self,
        base: Difficulty | str,
        records: Sequence[PracticeRecord],
        now: datetime,
        topic: str | None = None,
    ) -> Difficulty:
        """Compute rolling accuracy from history and adjust ``base`` with it."""
        return self.adjust(base, self.rolling_accuracy(records, now, topic))
