"""
Unit tests for RecommendationEngine.
"""

import pytest

from examprep.adaptive.recommendations import RecommendationEngine, assess_level
from examprep.assessment.evaluator import TestEvaluator
from examprep.core.exceptions import InvalidRequest
from examprep.core.models import (
    AnswerRecord,
    AreaScore,
    Attempt,
    PerformanceProfile,
    Priority,
)
from tests.conftest import make_item


@pytest.fixture
def engine(settings):
    return RecommendationEngine(settings)


def make_profile(now, accuracy=80.0, consistency=80.0, weak=(), subjects=None):
    return PerformanceProfile(
        student_id="s1",
        window_days=30,
        generated_at=now,
        accuracy=accuracy,
        consistency_score=consistency,
        improvement_rate=0.0,
        total_questions=20,
        topic_mastery={},
        weak_areas=tuple(AreaScore(name, acc) for name, acc in weak),
        strong_areas=(),
        subject_accuracy=subjects or {},
    )


def kinds(report):
    return [r.kind for r in report.recommendations]


class TestTriggers:
    def test_strong_profile_has_no_recommendations(self, engine, now):
        report = engine.recommend(profile=make_profile(now))
        assert report.recommendations == ()
        assert report.improvement_plan is None

    def test_low_accuracy_needs_foundation(self, engine, now):
        report = engine.recommend(profile=make_profile(now, accuracy=45.0))
        assert kinds(report) == ["foundation"]
        assert report.recommendations[0].priority is Priority.HIGH

    def test_mid_accuracy_needs_practice(self, engine, now):
        report = engine.recommend(profile=make_profile(now, accuracy=74.9))
        assert kinds(report) == ["practice"]
        assert report.recommendations[0].priority is Priority.MEDIUM

    def test_order_follows_triggers(self, engine, now):
        profile = make_profile(
            now,
            accuracy=55.0,
            consistency=20.0,
            weak=[("Optics", 30.0), ("Waves", 40.0), ("Algebra", 50.0)],
            subjects={"Physics": 70.0, "Maths": 45.0, "Chemistry": 20.0},
        )

        report = engine.recommend(profile=profile, limit=10)

        assert kinds(report) == [
            "practice",
            "subject_focus",
            "subject_focus",
            "topic_focus",
            "topic_focus",
            "topic_focus",
            "study_consistency",
        ]
        subjects = [r.target for r in report.recommendations if r.kind == "subject_focus"]
        assert subjects == ["Chemistry", "Maths"]
        topics = [r for r in report.recommendations if r.kind == "topic_focus"]
        assert [t.priority for t in topics] == [Priority.HIGH, Priority.HIGH, Priority.MEDIUM]
        assert topics[0].message == 'Weak in "Optics" (30% accuracy)'

    def test_default_cap_is_five(self, engine, now):
        profile = make_profile(now, accuracy=30.0, weak=[(f"T{i}", 10.0 + i) for i in range(8)])
        report = engine.recommend(profile=profile)
        assert len(report.recommendations) == 5
        assert report.recommendations[0].kind == "foundation"

    def test_limit_zero(self, engine, now):
        report = engine.recommend(profile=make_profile(now, accuracy=10.0), limit=0)
        assert report.recommendations == ()

    def test_requires_input(self, engine):
        with pytest.raises(InvalidRequest):
            engine.recommend()

    def test_negative_limit_rejected(self, engine, now):
        with pytest.raises(InvalidRequest):
            engine.recommend(profile=make_profile(now), limit=-1)


class TestWithEvaluation:
    @pytest.fixture
    def evaluation(self, settings, now):
        items = [
            make_item("o1", topic="Optics"),
            make_item("o2", topic="Optics"),
            make_item("k1"),
            make_item("k2"),
        ]
        answers = [
            AnswerRecord("o1", "B", 120.0),
            AnswerRecord("o2", "B", 120.0),
            AnswerRecord("k1", "A", 40.0),
            AnswerRecord("k2", "A", 40.0),
        ]
        attempt = Attempt(id="att", student_id="s1", item_ids=("o1", "o2", "k1", "k2"), answers=tuple(answers))
        return TestEvaluator(settings).evaluate(attempt, {i.id: i for i in items}, now)

    def test_evaluation_triggers(self, engine, evaluation):
        report = engine.recommend(evaluation=evaluation)

        assert kinds(report) == ["practice", "time_management", "subject_focus", "topic_focus"]
        assert report.recommendations[-1].target == "Optics"

    def test_weak_topics_deduplicated_across_sources(self, engine, evaluation, now):
        profile = make_profile(now, weak=[("Optics", 40.0), ("Waves", 50.0)])
        report = engine.recommend(profile=profile, evaluation=evaluation, limit=10)

        targets = [r.target for r in report.recommendations if r.kind == "topic_focus"]
        assert targets == ["Optics", "Waves"]

    def test_weak_topics_ranked_lowest_first_across_sources(self, engine, settings, now):
        items = [make_item("o1", topic="Optics"), make_item("o2", topic="Optics")]
        answers = [AnswerRecord("o1", "A", 40.0), AnswerRecord("o2", "B", 40.0)]
        attempt = Attempt(id="att-2", student_id="s1", item_ids=("o1", "o2"), answers=tuple(answers))
        evaluation = TestEvaluator(settings).evaluate(attempt, {i.id: i for i in items}, now)
        profile = make_profile(now, weak=[("Algebra", 10.0), ("Thermo", 20.0)])

        report = engine.recommend(profile=profile, evaluation=evaluation, limit=10)

        topics = [(r.target, r.priority) for r in report.recommendations if r.kind == "topic_focus"]
        assert topics == [
            ("Algebra", Priority.HIGH),
            ("Thermo", Priority.HIGH),
            ("Optics", Priority.MEDIUM),
        ]

    def test_evaluation_accuracy_takes_precedence(self, engine, evaluation, now):
        report = engine.recommend(profile=make_profile(now, accuracy=95.0), evaluation=evaluation)
        assert report.learning_path.current_level == "Beginner"

    def test_improvement_plan(self, engine, evaluation):
        plan = engine.recommend(evaluation=evaluation).improvement_plan

        assert plan.duration == "4 weeks"
        assert plan.focus_areas == ("Optics",)
        assert [(p.subject, p.weekly_hours) for p in plan.schedule] == [("Physics", 8)]


class TestLearningPath:
    def test_low_accuracy_three_phases(self, engine):
        path = engine.learning_path(35.0)
        assert [p.name for p in path.phases] == ["Foundation", "Practice", "Mastery"]
        assert path.current_level == "Foundation"
        assert path.estimated_weeks == 7

    def test_mid_accuracy_two_phases(self, engine):
        path = engine.learning_path(40.0)
        assert [p.name for p in path.phases] == ["Practice", "Mastery"]

    def test_high_accuracy_refinement(self, engine):
        path = engine.learning_path(70.0)
        assert [p.name for p in path.phases] == ["Refinement"]
        assert path.current_level == "Intermediate"

    @pytest.mark.parametrize(
        "accuracy,level",
        [(0, "Foundation"), (40, "Beginner"), (60, "Intermediate"), (80, "Advanced")],
    )
    def test_assess_level(self, accuracy, level):
        assert assess_level(accuracy) == level
