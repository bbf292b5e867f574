"""
Unit tests for TestEvaluator.

Covers scoring, negative marking, manual-review questions, time
classification, analytics breakdowns and score comparison.
"""

import pytest

from examprep.assessment.evaluator import TestEvaluator
from examprep.core.exceptions import InvalidAnswer, ItemNotFound
from examprep.core.models import (
    AnswerRecord,
    Attempt,
    Difficulty,
    PerformanceCategory,
    QuestionType,
    TimeClass,
    Trend,
)
from tests.conftest import make_item


@pytest.fixture
def evaluator(settings):
    return TestEvaluator(settings)


def attempt_for(items, answers, attempt_id="att-1", total_time=0.0):
    return Attempt(
        id=attempt_id,
        student_id="s1",
        item_ids=tuple(item.id for item in items),
        answers=tuple(answers),
        total_time_spent=total_time,
    )


def answer(question_id, given, seconds=45.0):
    return AnswerRecord(question_id=question_id, given_answer=given, time_spent_seconds=seconds)


def by_id(items):
    return {item.id: item for item in items}


class TestScoring:
    def test_seven_of_ten(self, evaluator, now):
        items = [make_item(f"q{i}") for i in range(10)]
        answers = [answer(f"q{i}", "A" if i < 7 else "B") for i in range(10)]

        result = evaluator.evaluate(attempt_for(items, answers), by_id(items), now)

        assert result.score == 70.0
        assert result.correct_answers == 7
        assert result.incorrect_answers == 3
        assert result.unanswered == 0
        assert result.accuracy == pytest.approx(70.0)
        assert result.performance_category is PerformanceCategory.AVERAGE
        assert result.passed
        assert result.evaluated_at == now

    def test_negative_marking(self, evaluator, now):
        items = [make_item(f"q{i}", marks=4.0, negative_marks=1.0) for i in range(4)]
        answers = [answer("q0", "A"), answer("q1", "B"), answer("q2", "B")]

        result = evaluator.evaluate(attempt_for(items, answers), by_id(items), now)

        assert result.marks_obtained == pytest.approx(2.0)
        assert result.max_marks == pytest.approx(16.0)
        assert result.score == 12.5
        assert result.unanswered == 1
        assert result.incorrect_answers == 2

    def test_score_can_go_negative(self, evaluator, now):
        items = [make_item("q0", negative_marks=2.0)]
        result = evaluator.evaluate(attempt_for(items, [answer("q0", "B")]), by_id(items), now)
        assert result.score == -200.0
        assert result.performance_category is PerformanceCategory.POOR
        assert not result.passed

    def test_unanswered_question(self, evaluator, now):
        items = [make_item("q0", negative_marks=1.0)]
        result = evaluator.evaluate(attempt_for(items, [answer("q0", None, seconds=5)]), by_id(items), now)

        question = result.questions[0]
        assert question.answered is False
        assert question.is_correct is False
        assert question.marks_awarded == 0.0
        assert question.time_class is None
        assert result.unanswered == 1
        assert result.incorrect_answers == 0

    def test_free_text_pending_review(self, evaluator, now):
        items = [
            make_item("q0"),
            make_item("essay", question_type=QuestionType.FREE_TEXT, answer_key=None, marks=10.0),
        ]
        answers = [answer("q0", "A"), answer("essay", "Forces balance")]

        result = evaluator.evaluate(attempt_for(items, answers), by_id(items), now)

        assert result.pending_review == 1
        assert result.graded_questions == 1
        assert result.max_marks == pytest.approx(1.0)
        assert result.score == 100.0
        assert result.questions[1].needs_manual_review
        assert result.analytics.by_topic["Kinematics"].total == 1

    def test_empty_attempt(self, evaluator, now):
        result = evaluator.evaluate(attempt_for([], []), {}, now)
        assert result.score == 0.0
        assert result.total_questions == 0
        assert result.analytics.time_management.average_time_per_question == 0.0


class TestValidation:
    def test_missing_item(self, evaluator, now):
        items = [make_item("q0")]
        attempt = attempt_for(items, [])
        with pytest.raises(ItemNotFound):
            evaluator.evaluate(attempt, {}, now)

    def test_answer_outside_attempt(self, evaluator, now):
        items = [make_item("q0")]
        with pytest.raises(InvalidAnswer):
            evaluator.evaluate(attempt_for(items, [answer("q9", "A")]), by_id(items), now)

    def test_duplicate_answer(self, evaluator, now):
        items = [make_item("q0")]
        attempt = attempt_for(items, [answer("q0", "A"), answer("q0", "B")])
        with pytest.raises(InvalidAnswer):
            evaluator.evaluate(attempt, by_id(items), now)

    def test_wrong_answer_shape(self, evaluator, now):
        items = [make_item("q0", question_type=QuestionType.NUMERIC, answer_key=9.81)]
        with pytest.raises(InvalidAnswer):
            evaluator.evaluate(attempt_for(items, [answer("q0", "fast")]), by_id(items), now)


class TestTimeManagement:
    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (10, TimeClass.TOO_FAST),
            (29.9, TimeClass.TOO_FAST),
            (30, TimeClass.OPTIMAL),
            (90, TimeClass.OPTIMAL),
            (91, TimeClass.TOO_SLOW),
        ],
    )
    def test_classify_default_allotment(self, evaluator, seconds, expected):
        assert evaluator.classify_time(seconds, None) is expected

    def test_classify_uses_item_allotment(self, evaluator):
        assert evaluator.classify_time(100, 120) is TimeClass.OPTIMAL
        assert evaluator.classify_time(100, 40) is TimeClass.TOO_SLOW

    def test_counts_and_average(self, evaluator, now):
        items = [make_item(f"q{i}") for i in range(4)]
        answers = [answer("q0", "A", 5), answer("q1", "A", 60), answer("q2", "A", 200)]

        result = evaluator.evaluate(attempt_for(items, answers, total_time=400), by_id(items), now)
        tm = result.analytics.time_management

        assert (tm.too_fast, tm.optimal, tm.too_slow) == (1, 1, 1)
        assert tm.average_time_per_question == pytest.approx(100.0)


class TestAnalytics:
    def test_breakdowns_and_areas(self, evaluator, now):
        items = [
            make_item("k1", topic="Kinematics", subtopic="graphs", difficulty=Difficulty.EASY),
            make_item("k2", topic="Kinematics", subtopic="graphs", difficulty=Difficulty.HARD),
            make_item("o1", topic="Optics", subject="Physics"),
            make_item("o2", topic="Optics", subject="Physics"),
            make_item("a1", topic="Algebra", subject="Maths"),
        ]
        answers = [
            answer("k1", "A"),
            answer("k2", "A"),
            answer("o1", "A"),
            answer("o2", "B"),
            answer("a1", "B"),
        ]

        result = evaluator.evaluate(attempt_for(items, answers), by_id(items), now)
        analytics = result.analytics

        assert analytics.by_topic["Optics"].percentage == 50.0
        assert analytics.by_subtopic["graphs"].correct == 2
        assert analytics.by_subject["Physics"].total == 4
        assert analytics.by_difficulty[Difficulty.HARD].correct == 1
        assert [a.name for a in analytics.weak_areas] == ["Algebra", "Optics"]
        assert [a.name for a in analytics.strong_areas] == ["Kinematics"]

    def test_practice_records_per_topic(self, evaluator, now):
        items = [
            make_item("k1", subtopic="graphs"),
            make_item("k2", subtopic="vectors"),
            make_item("a1", topic="Algebra", subject="Maths"),
        ]
        answers = [answer("k1", "A", 20), answer("k2", "B", 30), answer("a1", "A", 10)]
        result = evaluator.evaluate(attempt_for(items, answers), by_id(items), now)

        records = {r.topic: r for r in evaluator.practice_records(result, by_id(items))}

        assert records["Kinematics"].total_questions == 2
        assert records["Kinematics"].correct == 1
        assert records["Kinematics"].time_spent_seconds == pytest.approx(50.0)
        assert dict(records["Kinematics"].subtopics) == {"graphs": (1, 1), "vectors": (0, 1)}
        assert records["Algebra"].subject == "Maths"
        assert records["Algebra"].recorded_at == now

    def test_graded_answers(self, evaluator, now):
        items = [make_item("q0"), make_item("q1")]
        attempt = attempt_for(items, [answer("q0", "A"), answer("q1", "C")])
        result = evaluator.evaluate(attempt, by_id(items), now)

        graded = evaluator.graded_answers(attempt, result)
        assert [a.is_correct for a in graded] == [True, False]


class TestComparison:
    def test_no_history(self, evaluator):
        assert evaluator.compare_to_previous(80.0, []) is None

    def test_improving(self, evaluator):
        analysis = evaluator.compare_to_previous(80.0, [70.0, 60.0])
        assert analysis.previous_average == 65.0
        assert analysis.improvement == 15.0
        assert analysis.trend is Trend.IMPROVING
        assert analysis.tests_compared == 2

    def test_only_five_most_recent(self, evaluator):
        analysis = evaluator.compare_to_previous(50.0, [50, 50, 50, 50, 50, 0, 0])
        assert analysis.tests_compared == 5
        assert analysis.trend is Trend.STABLE

    def test_declining(self, evaluator):
        assert evaluator.compare_to_previous(40.0, [60.0]).trend is Trend.DECLINING
