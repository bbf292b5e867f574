"""
Recommendation Engine.

Turns a PerformanceProfile and/or an EvaluationResult into study guidance.

Recommendation triggers, in rank order:
1. overall accuracy below 50% (foundation) or below 75% (practice)
2. more too-slow than too-fast answers (time management)
3. each subject below 60% accuracy, weakest first
4. each weak topic, weakest first (the first two are high priority)
5. study consistency below 60%

Duplicates are dropped, trigger order is kept, and the list is capped.

The learning path is picked from overall accuracy:
    < 40%  Foundation -> Practice -> Mastery
    < 70%  Practice -> Mastery
    else   Refinement
"""

from __future__ import annotations

from loguru import logger

from examprep.config import Settings, get_settings
from examprep.core.exceptions import InvalidRequest
from examprep.core.models import (
    AreaScore,
    EvaluationResult,
    ImprovementPlan,
    LearningPath,
    LearningPhase,
    PerformanceProfile,
    Priority,
    Recommendation,
    RecommendationReport,
    SubjectPlan,
)

# =============================================================================
# Learning path phases
# =============================================================================

_FOUNDATION_TRACK = (
    LearningPhase(
        name="Foundation",
        duration="2-3 weeks",
        focus="Basic concepts and terminology",
        activities=("Concept learning", "Basic problems", "Flashcards"),
        min_weeks=2,
    ),
    LearningPhase(
        name="Practice",
        duration="3-4 weeks",
        focus="Application and problem solving",
        activities=("Mixed practice", "Timed quizzes", "Error analysis"),
        min_weeks=3,
    ),
    LearningPhase(
        name="Mastery",
        duration="2-3 weeks",
        focus="Advanced topics and speed",
        activities=("Advanced problems", "Mock tests", "Revision"),
        min_weeks=2,
    ),
)

_PRACTICE_TRACK = (
    LearningPhase(
        name="Practice",
        duration="3-4 weeks",
        focus="Application and weak areas",
        activities=("Focused practice", "Concept reinforcement", "Speed training"),
        min_weeks=3,
    ),
    LearningPhase(
        name="Mastery",
        duration="3-4 weeks",
        focus="Advanced topics and test strategy",
        activities=("Advanced problems", "Full tests", "Strategy development"),
        min_weeks=3,
    ),
)

_REFINEMENT_TRACK = (
    LearningPhase(
        name="Refinement",
        duration="2-3 weeks",
        focus="Fine-tuning and speed",
        activities=("Advanced problems", "Speed drills", "Test simulations"),
        min_weeks=2,
    ),
)


def assess_level(accuracy: float) -> str:
    """Coarse level label for an accuracy percentage."""
    if accuracy >= 80:
        return "Advanced"
    if accuracy >= 60:
        return "Intermediate"
    if accuracy >= 40:
        return "Beginner"
    return "Foundation"


class RecommendationEngine:
    """Ranks study recommendations and selects a learning path."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def recommend(
        self,
        profile: PerformanceProfile | None = None,
        evaluation: EvaluationResult | None = None,
        limit: int | None = None,
    ) -> RecommendationReport:
        """
        Build recommendations, learning path and (after a test) an improvement plan.

        Args:
            profile: Windowed performance profile
            evaluation: Result of the attempt just scored
            limit: Maximum recommendations (defaults to the configured limit)

        Returns:
            RecommendationReport
        """
        if profile is None and evaluation is None:
            raise InvalidRequest("recommendations need a profile or an evaluation")
        limit = self.settings.recommendation_limit if limit is None else limit
        if limit < 0:
            raise InvalidRequest(f"limit must be non-negative, got {limit}")

        accuracy = evaluation.accuracy if evaluation is not None else profile.accuracy
        recommendations = self._dedupe(self._triggers(profile, evaluation, accuracy))[:limit]

        logger.debug(
            f"Built {len(recommendations)} recommendations at accuracy {accuracy:.1f}%"
        )
        return RecommendationReport(
            recommendations=tuple(recommendations),
            learning_path=self.learning_path(accuracy),
            improvement_plan=self.improvement_plan(evaluation) if evaluation is not None else None,
        )

    # =========================================================================
    # Triggers
    # =========================================================================

    def _triggers(
        self,
        profile: PerformanceProfile | None,
        evaluation: EvaluationResult | None,
        accuracy: float,
    ) -> list[Recommendation]:
        s = self.settings
        recs: list[Recommendation] = []

        if accuracy < s.foundation_accuracy:
            recs.append(
                Recommendation(
                    kind="foundation",
                    priority=Priority.HIGH,
                    title="Strengthen Fundamentals",
                    message="Focus on strengthening fundamental concepts before attempting advanced problems",
                    action="Review basic concepts and practice foundational questions",
                )
            )
        elif accuracy < s.practice_accuracy:
            recs.append(
                Recommendation(
                    kind="practice",
                    priority=Priority.MEDIUM,
                    title="Practice Regularly",
                    message="Regular practice with varied difficulty levels will improve performance",
                    action="Attempt mixed-difficulty practice sets daily",
                )
            )

        if evaluation is not None:
            timing = evaluation.analytics.time_management
            if timing.too_slow > timing.too_fast:
                recs.append(
                    Recommendation(
                        kind="time_management",
                        priority=Priority.MEDIUM,
                        title="Improve Speed",
                        message="Work on improving speed while maintaining accuracy",
                        action="Practice with timed quizzes and learn time-saving techniques",
                    )
                )

        for subject, subject_accuracy in self._subject_accuracy(profile, evaluation):
            if subject_accuracy < s.subject_focus_accuracy:
                recs.append(
                    Recommendation(
                        kind="subject_focus",
                        priority=Priority.HIGH,
                        title=f"Focus on {subject}",
                        message=f"Need improvement in {subject} (Accuracy: {round(subject_accuracy)}%)",
                        action=f"Dedicate more study time to {subject} concepts",
                        target=subject,
                    )
                )

        for index, area in enumerate(self._weak_topics(profile, evaluation)):
            recs.append(
                Recommendation(
                    kind="topic_focus",
                    priority=Priority.HIGH if index < s.high_priority_weak_topics else Priority.MEDIUM,
                    title=f"Improve {area.name}",
                    message=f'Weak in "{area.name}" ({round(area.accuracy)}% accuracy)',
                    action=f"Practice more questions on {area.name} and review related concepts",
                    target=area.name,
                )
            )

        if profile is not None and profile.consistency_score < s.study_consistency_threshold:
            recs.append(
                Recommendation(
                    kind="study_consistency",
                    priority=Priority.HIGH,
                    title="Establish Routine",
                    message="Regular study schedule improves long-term retention",
                    action="Set fixed study times daily and track daily progress",
                )
            )

        return recs

    @staticmethod
    def _subject_accuracy(
        profile: PerformanceProfile | None,
        evaluation: EvaluationResult | None,
    ) -> list[tuple[str, float]]:
        if evaluation is not None:
            scores = {name: b.percentage for name, b in evaluation.analytics.by_subject.items()}
        else:
            scores = dict(profile.subject_accuracy)
        return sorted(scores.items(), key=lambda kv: (kv[1], kv[0]))

    @staticmethod
    def _weak_topics(
        profile: PerformanceProfile | None,
        evaluation: EvaluationResult | None,
    ) -> list[AreaScore]:
        areas: list[AreaScore] = []
        if evaluation is not None:
            areas.extend(evaluation.analytics.weak_areas)
        if profile is not None:
            areas.extend(profile.weak_areas)
        lowest: dict[str, AreaScore] = {}
        for area in areas:
            if area.name not in lowest or area.accuracy < lowest[area.name].accuracy:
                lowest[area.name] = area
        return sorted(lowest.values(), key=lambda a: (a.accuracy, a.name))

    @staticmethod
    def _dedupe(recs: list[Recommendation]) -> list[Recommendation]:
        seen: set[tuple[str, str | None]] = set()
        unique = []
        for rec in recs:
            key = (rec.kind, rec.target)
            if key not in seen:
                seen.add(key)
                unique.append(rec)
        return unique

    # =========================================================================
    # Plans
    # =========================================================================

    def learning_path(self, accuracy: float) -> LearningPath:
        s = self.settings
        if accuracy < s.path_foundation_accuracy:
            phases = _FOUNDATION_TRACK
        elif accuracy < s.path_practice_accuracy:
            phases = _PRACTICE_TRACK
        else:
            phases = _REFINEMENT_TRACK
        return LearningPath(current_level=assess_level(accuracy), phases=phases)

    def improvement_plan(self, evaluation: EvaluationResult) -> ImprovementPlan:
        """Four-week plan focused on the attempt's weakest topics and subjects."""
        s = self.settings
        schedule = []
        for subject, bucket in sorted(evaluation.analytics.by_subject.items()):
            weak = bucket.percentage < s.subject_focus_accuracy
            schedule.append(
                SubjectPlan(
                    subject=subject,
                    weekly_hours=8 if weak else 4,
                    focus="concept strengthening" if weak else "advanced practice",
                )
            )
        return ImprovementPlan(
            duration="4 weeks",
            focus_areas=tuple(a.name for a in evaluation.analytics.weak_areas[:3]),
            schedule=tuple(schedule),
        )
