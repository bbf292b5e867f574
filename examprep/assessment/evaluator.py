"""
Test Evaluator.

Scores a submitted attempt against the answer keys of its items:

- single choice: exact match
- multi choice: same options, same count
- numeric: |given - key| <= 1% of |key|
- free text: not auto-graded, flagged for manual review

A correct answer awards the item's marks, an incorrect one deducts its
negative marks, an unanswered question scores 0. The score is the awarded
total over the maximum of all auto-gradable questions, as a percentage.

Each answered question is also classified for time management against its
allotted time (default 60s): under half is too fast, over 1.5x is too slow.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Hashable, Mapping, Sequence
from datetime import datetime

from loguru import logger

from examprep.config import Settings, get_settings
from examprep.core.classification import strong_areas, weak_areas
from examprep.core.exceptions import InvalidAnswer, ItemNotFound
from examprep.core.models import (
    AnalyticsBreakdown,
    AnswerRecord,
    Attempt,
    ComparativeAnalysis,
    EvaluationResult,
    LearningItem,
    PerformanceBucket,
    PerformanceCategory,
    PracticeRecord,
    QuestionResult,
    QuestionType,
    TimeClass,
    TimeManagement,
    Trend,
)

from .answer_checks import get_checker


class _Tally:
    """Mutable correct/total counter used while building breakdowns."""

    def __init__(self) -> None:
        self.counts: dict[Hashable, list[int]] = defaultdict(lambda: [0, 0])

    def add(self, key: Hashable | None, correct: bool) -> None:
        if key is None:
            return
        bucket = self.counts[key]
        bucket[0] += int(correct)
        bucket[1] += 1

    def freeze(self) -> dict:
        return {k: PerformanceBucket(correct=c, total=t) for k, (c, t) in self.counts.items()}


class TestEvaluator:
    """Deterministic scoring of one attempt."""

    __test__ = False  # not a pytest class

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def classify_time(self, time_spent: float, allotted: int | None) -> TimeClass:
        s = self.settings
        optimal = allotted or s.default_allotted_seconds
        if time_spent < optimal * s.time_too_fast_ratio:
            return TimeClass.TOO_FAST
        if time_spent > optimal * s.time_too_slow_ratio:
            return TimeClass.TOO_SLOW
        return TimeClass.OPTIMAL

    def evaluate(
        self,
        attempt: Attempt,
        items: Mapping[str, LearningItem],
        now: datetime,
    ) -> EvaluationResult:
        """
        Score an attempt.

        Args:
            attempt: Attempt whose answers are to be scored
            items: Learning items keyed by id; must cover every question
            now: Evaluation timestamp

        Returns:
            EvaluationResult with per-question results and analytics

        Raises:
            ItemNotFound: A question id has no learning item
            InvalidAnswer: An answer or key has the wrong shape, or an
                answer refers to a question outside the attempt
        """
        answers = self._index_answers(attempt)
        tolerance = self.settings.numeric_tolerance

        questions: list[QuestionResult] = []
        by_topic, by_subtopic, by_subject = _Tally(), _Tally(), _Tally()
        by_difficulty, by_cognitive = _Tally(), _Tally()
        time_counts: dict[TimeClass, int] = defaultdict(int)

        for question_id in attempt.item_ids:
            item = items.get(question_id)
            if item is None:
                raise ItemNotFound(question_id)
            answer = answers.get(question_id)
            result = self._score_question(item, answer, tolerance)
            questions.append(result)

            if result.time_class is not None:
                time_counts[result.time_class] += 1
            if item.question_type == QuestionType.FREE_TEXT:
                continue
            correct = bool(result.is_correct)
            by_topic.add(item.topic, correct)
            by_subtopic.add(item.subtopic, correct)
            by_subject.add(item.subject, correct)
            by_difficulty.add(item.difficulty, correct)
            by_cognitive.add(item.cognitive_level, correct)

        gradable = [q for q in questions if q.is_correct is not None]
        marks_obtained = sum(q.marks_awarded for q in questions)
        max_marks = sum(q.max_marks for q in questions)
        score = round((marks_obtained / max_marks) * 100, 2) if max_marks > 0 else 0.0

        correct_answers = sum(1 for q in gradable if q.is_correct is True)
        unanswered = sum(1 for q in questions if not q.answered)
        pending_review = sum(1 for q in questions if q.needs_manual_review)
        incorrect_answers = sum(1 for q in gradable if q.is_correct is False and q.answered)

        total_time = attempt.total_time_spent or sum(q.time_spent_seconds for q in questions)
        topic_buckets = by_topic.freeze()
        topic_accuracy = {name: b.percentage for name, b in topic_buckets.items()}
        s = self.settings

        analytics = AnalyticsBreakdown(
            by_topic=topic_buckets,
            by_subtopic=by_subtopic.freeze(),
            by_subject=by_subject.freeze(),
            by_difficulty=by_difficulty.freeze(),
            by_cognitive_level=by_cognitive.freeze(),
            weak_areas=weak_areas(topic_accuracy, s.weak_area_threshold, s.weak_area_limit),
            strong_areas=strong_areas(topic_accuracy, s.strong_area_threshold, s.strong_area_limit),
            time_management=TimeManagement(
                too_fast=time_counts[TimeClass.TOO_FAST],
                optimal=time_counts[TimeClass.OPTIMAL],
                too_slow=time_counts[TimeClass.TOO_SLOW],
                average_time_per_question=(total_time / len(questions)) if questions else 0.0,
            ),
        )

        logger.debug(
            f"Evaluated attempt {attempt.id}: {correct_answers}/{len(questions)} correct, score {score}"
        )
        return EvaluationResult(
            attempt_id=attempt.id,
            student_id=attempt.student_id,
            score=score,
            marks_obtained=marks_obtained,
            max_marks=max_marks,
            total_questions=len(questions),
            graded_questions=len(gradable),
            correct_answers=correct_answers,
            incorrect_answers=incorrect_answers,
            unanswered=unanswered,
            pending_review=pending_review,
            questions=tuple(questions),
            analytics=analytics,
            performance_category=PerformanceCategory.from_score(score),
            passed=score >= s.passing_score,
            total_time_spent=total_time,
            evaluated_at=now,
        )

    def _index_answers(self, attempt: Attempt) -> dict[str, AnswerRecord]:
        allowed = set(attempt.item_ids)
        answers: dict[str, AnswerRecord] = {}
        for answer in attempt.answers:
            if answer.question_id not in allowed:
                raise InvalidAnswer(f"Answer for {answer.question_id} is not part of attempt {attempt.id}")
            if answer.question_id in answers:
                raise InvalidAnswer(f"Duplicate answer for {answer.question_id} in attempt {attempt.id}")
            if answer.time_spent_seconds < 0:
                raise InvalidAnswer(f"Negative time spent on {answer.question_id}")
            answers[answer.question_id] = answer
        return answers

    def _score_question(
        self,
        item: LearningItem,
        answer: AnswerRecord | None,
        tolerance: float,
    ) -> QuestionResult:
        checker = get_checker(item.question_type)
        checker.validate_key(item)
        auto_graded = item.question_type != QuestionType.FREE_TEXT
        max_marks = item.marks if auto_graded else 0.0

        if answer is None or answer.given_answer is None:
            spent = answer.time_spent_seconds if answer else 0.0
            return QuestionResult(
                question_id=item.id,
                is_correct=False if auto_graded else None,
                marks_awarded=0.0,
                max_marks=max_marks,
                time_spent_seconds=spent,
                time_class=None,
                answered=False,
            )

        checker.validate_answer(item, answer.given_answer)
        is_correct = checker.is_correct(item, answer.given_answer, tolerance)
        if is_correct is None:
            awarded = 0.0
        elif is_correct:
            awarded = item.marks
        else:
            awarded = -item.negative_marks

        return QuestionResult(
            question_id=item.id,
            is_correct=is_correct,
            marks_awarded=awarded,
            max_marks=max_marks,
            time_spent_seconds=answer.time_spent_seconds,
            time_class=self.classify_time(answer.time_spent_seconds, item.allotted_seconds),
        )

    # =========================================================================
    # Derived outputs
    # =========================================================================

    @staticmethod
    def graded_answers(attempt: Attempt, result: EvaluationResult) -> tuple[AnswerRecord, ...]:
        """Attempt answers with ``is_correct`` filled in from the evaluation."""
        verdicts = {q.question_id: q.is_correct for q in result.questions}
        return tuple(
            AnswerRecord(
                question_id=a.question_id,
                given_answer=a.given_answer,
                time_spent_seconds=a.time_spent_seconds,
                is_correct=verdicts.get(a.question_id),
            )
            for a in attempt.answers
        )

    @staticmethod
    def practice_records(
        result: EvaluationResult,
        items: Mapping[str, LearningItem],
    ) -> list[PracticeRecord]:
        """One topic-level practice record per topic covered by the attempt."""
        totals: dict[str, dict] = {}
        for q in result.questions:
            if q.is_correct is None:
                continue
            item = items[q.question_id]
            entry = totals.setdefault(
                item.topic,
                {"subject": item.subject, "total": 0, "correct": 0, "time": 0.0, "subtopics": {}},
            )
            entry["total"] += 1
            entry["correct"] += int(q.is_correct)
            entry["time"] += q.time_spent_seconds
            if item.subtopic:
                sub_correct, sub_total = entry["subtopics"].get(item.subtopic, (0, 0))
                entry["subtopics"][item.subtopic] = (sub_correct + int(q.is_correct), sub_total + 1)

        return [
            PracticeRecord(
                student_id=result.student_id,
                topic=topic,
                subject=entry["subject"],
                total_questions=entry["total"],
                correct=entry["correct"],
                recorded_at=result.evaluated_at,
                time_spent_seconds=entry["time"],
                subtopics=entry["subtopics"],
                source="attempt",
            )
            for topic, entry in totals.items()
        ]

    def compare_to_previous(
        self,
        current_score: float,
        previous_scores: Sequence[float],
    ) -> ComparativeAnalysis | None:
        """
        Compare a score with the learner's most recent earlier scores.

        Args:
            current_score: Score of the attempt just evaluated
            previous_scores: Earlier scores, most recent first

        Returns:
            ComparativeAnalysis, or None when there is nothing to compare
        """
        recent = list(previous_scores)[: self.settings.comparison_history_limit]
        if not recent:
            return None
        previous_average = sum(recent) / len(recent)
        improvement = round(current_score - previous_average, 2)
        if improvement > 0:
            trend = Trend.IMPROVING
        elif improvement < 0:
            trend = Trend.DECLINING
        else:
            trend = Trend.STABLE
        return ComparativeAnalysis(
            current_score=current_score,
            previous_average=round(previous_average, 2),
            improvement=improvement,
            trend=trend,
            tests_compared=len(recent),
        )
