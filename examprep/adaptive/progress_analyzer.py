"""
Progress Analyzer.

Aggregates a learner's practice records over a time window into a
PerformanceProfile:

- accuracy: total correct / total questions (percent)
- consistency: distinct active days / min(window, 30) (percent, capped at 100)
- improvement rate: relative change from the earliest to the latest record
  in the window (percent; 0 without two records or with a zero baseline)
- topic mastery: topic accuracy with a confidence weight that grows with
  the number of attempts
- weak/strong areas and weak subtopics using the shared 60/75 thresholds

Topics with no questions are left out entirely.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from examprep.config import Settings, get_settings
from examprep.core.classification import strong_areas, weak_areas
from examprep.core.exceptions import InvalidRequest
from examprep.core.models import PerformanceProfile, PracticeRecord, TopicMastery


@dataclass
class _TopicTally:
    questions: int = 0
    correct: float = 0.0
    attempts: int = 0
    last_practiced: datetime | None = None


class ProgressAnalyzer:
    """Builds PerformanceProfiles from practice history."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def analyze(
        self,
        student_id: str,
        records: Sequence[PracticeRecord],
        now: datetime,
        window_days: int | None = None,
    ) -> PerformanceProfile:
        """
        Summarize practice inside ``[now - window_days, now]``.

        Args:
            student_id: Learner the records belong to
            records: Practice history in any order
            now: End of the window (UTC)
            window_days: Window length, defaults to the configured 30 days

        Returns:
            PerformanceProfile; an empty history yields the zero baseline
        """
        s = self.settings
        window = s.default_window_days if window_days is None else window_days
        if window <= 0:
            raise InvalidRequest(f"window must be positive, got {window_days}")

        since = now - timedelta(days=window)
        in_window = sorted(
            (r for r in records if since <= r.recorded_at <= now),
            key=lambda r: r.recorded_at,
        )

        total_questions = sum(r.total_questions for r in in_window)
        total_correct = sum(r.correct for r in in_window)
        accuracy = (total_correct / total_questions) * 100 if total_questions else 0.0

        active_days = len({r.recorded_at.date() for r in in_window})
        consistency = min(100.0, active_days / min(window, s.consistency_day_cap) * 100)

        topic_mastery = self._topic_mastery(in_window)
        topic_scores = {name: tm.mastery for name, tm in topic_mastery.items()}

        profile = PerformanceProfile(
            student_id=student_id,
            window_days=window,
            generated_at=now,
            accuracy=accuracy,
            consistency_score=consistency,
            improvement_rate=self._improvement_rate(in_window),
            total_questions=total_questions,
            topic_mastery=topic_mastery,
            weak_areas=weak_areas(topic_scores, s.weak_area_threshold, s.weak_area_limit),
            strong_areas=strong_areas(topic_scores, s.strong_area_threshold, s.strong_area_limit),
            weak_subtopics=weak_areas(
                self._subtopic_accuracy(in_window), s.weak_area_threshold, s.weak_subtopic_limit
            ),
            subject_accuracy=self._subject_accuracy(in_window),
            active_days=active_days,
        )
        logger.debug(
            f"Profile for {student_id}: {len(in_window)} records, accuracy {accuracy:.1f}%, "
            f"{len(profile.weak_areas)} weak / {len(profile.strong_areas)} strong topics"
        )
        return profile

    # =========================================================================
    # Aggregates
    # =========================================================================

    def _improvement_rate(self, ordered: Sequence[PracticeRecord]) -> float:
        graded = [r for r in ordered if r.total_questions > 0]
        if len(graded) < 2:
            return 0.0
        first, last = graded[0].accuracy, graded[-1].accuracy
        if first == 0:
            return 0.0
        return ((last - first) / first) * 100

    def _topic_mastery(self, records: Sequence[PracticeRecord]) -> dict[str, TopicMastery]:
        s = self.settings
        tallies: dict[str, _TopicTally] = defaultdict(_TopicTally)
        for r in records:
            tally = tallies[r.topic]
            tally.questions += r.total_questions
            tally.correct += r.correct
            tally.attempts += 1
            if tally.last_practiced is None or r.recorded_at > tally.last_practiced:
                tally.last_practiced = r.recorded_at

        mastery: dict[str, TopicMastery] = {}
        for topic, tally in tallies.items():
            if tally.questions == 0:
                continue
            fraction = tally.correct / tally.questions
            attempt_weight = min(tally.attempts / s.confidence_attempt_cap, 1.0)
            confidence = (
                attempt_weight * s.confidence_attempt_weight + fraction * s.confidence_accuracy_weight
            ) * 100
            mastery[topic] = TopicMastery(
                topic=topic,
                mastery=fraction * 100,
                confidence=confidence,
                attempts=tally.attempts,
                questions=tally.questions,
                last_practiced=tally.last_practiced,
            )
        return mastery

    @staticmethod
    def _subtopic_accuracy(records: Sequence[PracticeRecord]) -> dict[str, float]:
        correct: dict[str, float] = defaultdict(float)
        total: dict[str, int] = defaultdict(int)
        for r in records:
            for name, (sub_correct, sub_total) in r.subtopics.items():
                correct[name] += sub_correct
                total[name] += sub_total
        return {name: (correct[name] / total[name]) * 100 for name in total if total[name] > 0}

    @staticmethod
    def _subject_accuracy(records: Sequence[PracticeRecord]) -> dict[str, float]:
        correct: dict[str, float] = defaultdict(float)
        total: dict[str, int] = defaultdict(int)
        for r in records:
            correct[r.subject] += r.correct
            total[r.subject] += r.total_questions
        return {name: (correct[name] / total[name]) * 100 for name in total if total[name] > 0}
