"""
Mastery Engine service.

Engine-facing operations over a Store:

- submit_review / submit_reviews: schedule reviews and commit them atomically
- get_due_items: prioritised review queue for a set
- create_attempt / submit_attempt: score a test and record its outcome
- get_progress: windowed PerformanceProfile (cached)
- recommend, adjust_difficulty, build_practice_set, set_summary

Every operation reads a snapshot from the store, recomputes with the pure
components, and writes back with the version it read. Nothing is written
until every input has been validated.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

from loguru import logger
from pydantic import ValidationError

from examprep.adaptive.difficulty import DifficultyAdapter
from examprep.adaptive.progress_analyzer import ProgressAnalyzer
from examprep.adaptive.recommendations import RecommendationEngine
from examprep.assessment.answer_checks import validate_item
from examprep.assessment.evaluator import TestEvaluator
from examprep.cache import TTLCache
from examprep.config import Settings, get_settings
from examprep.content.generator import ContentGenerator, FallbackContentGenerator
from examprep.core.clock import Clock, SystemClock
from examprep.core.exceptions import (
    AttemptClosed,
    BatchRejected,
    EngineError,
    InvalidItem,
    InvalidRequest,
    ItemNotFound,
)
from examprep.core.models import (
    AnswerRecord,
    Attempt,
    AttemptStatus,
    ComparativeAnalysis,
    Difficulty,
    EvaluationResult,
    ItemProgress,
    ItemSet,
    LearningItem,
    PerformanceProfile,
    PracticeRecord,
    QuestionType,
    RecommendationReport,
    ReviewRecord,
)
from examprep.db.store import ReviewEntry, Store
from examprep.schemas import AnswerSubmission, ReviewSubmission
from examprep.study.mastery_estimator import MasteryEstimator
from examprep.study.review_queue import DueItem, SetSummary, select_due_items, summarize_set
from examprep.study.scheduler import ReviewScheduler


@dataclass(frozen=True)
class AttemptReport:
    """Everything produced by submitting an attempt."""

    attempt: Attempt
    evaluation: EvaluationResult
    recommendations: RecommendationReport
    comparison: ComparativeAnalysis | None


class MasteryEngine:
    """
    Facade over the scheduling, estimation, analysis and scoring components.

    Args:
        store: Persistence collaborator
        settings: Engine settings (uses the cached global settings if None)
        clock: UTC time source (system clock if None)
        cache: Cache for derived profiles (fresh TTLCache if None)
        content_generator: Question source (deterministic fallback if None)
    """

    def __init__(
        self,
        store: Store,
        settings: Settings | None = None,
        clock: Clock | None = None,
        cache: TTLCache | None = None,
        content_generator: ContentGenerator | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.cache = cache or TTLCache(
            max_entries=self.settings.cache_max_entries,
            default_ttl=self.settings.cache_ttl_seconds,
            clock=self.clock,
        )
        self.content = content_generator or FallbackContentGenerator(self.settings)

        self.scheduler = ReviewScheduler(self.settings)
        self.estimator = MasteryEstimator(self.settings)
        self.adapter = DifficultyAdapter(self.settings)
        self.analyzer = ProgressAnalyzer(self.settings)
        self.evaluator = TestEvaluator(self.settings)
        self.recommender = RecommendationEngine(self.settings)

    # =========================================================================
    # Item sets
    # =========================================================================

    async def register_item_set(
        self,
        set_id: str,
        name: str,
        items: Sequence[LearningItem],
        owner_id: str | None = None,
    ) -> ItemSet:
        """Validate answer keys and store an ordered item set."""
        if not items:
            raise InvalidRequest(f"Item set {set_id} has no items")
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise InvalidItem(f"Duplicate item id {item.id} in set {set_id}")
            seen.add(item.id)
            validate_item(item)

        item_set = ItemSet(id=set_id, name=name, items=tuple(items), owner_id=owner_id)
        await self.store.save_item_set(item_set)
        logger.info(f"Registered item set {set_id} ({len(items)} items)")
        return item_set

    # =========================================================================
    # Reviews
    # =========================================================================

    async def submit_review(
        self,
        student_id: str,
        item_id: str,
        performance: float,
        time_spent: float = 0.0,
    ) -> ReviewRecord:
        """
        Record one review and return its ReviewRecord.

        Raises:
            ItemNotFound: The item is not part of any registered set
            InvalidPerformance: Performance is not a number in [0, 1]
        """
        item_set, _ = await self.store.find_item(item_id)
        records = await self._apply_reviews(
            student_id,
            item_set,
            [{"item_id": item_id, "performance": performance, "time_spent": time_spent}],
            batch=False,
        )
        return records[0]

    async def submit_reviews(
        self,
        student_id: str,
        set_id: str,
        submissions: Sequence[ReviewSubmission | Mapping[str, Any]],
    ) -> list[ReviewRecord]:
        """
        Record a batch of reviews on one set, all or nothing.

        Raises:
            BatchRejected: Any member is invalid; no review was committed
        """
        if not submissions:
            raise InvalidRequest("review batch is empty")
        item_set = await self.store.get_item_set(set_id)
        return await self._apply_reviews(student_id, item_set, submissions, batch=True)

    async def _apply_reviews(
        self,
        student_id: str,
        item_set: ItemSet,
        submissions: Sequence[ReviewSubmission | Mapping[str, Any]],
        batch: bool,
    ) -> list[ReviewRecord]:
        now = self.clock.now()
        progress = await self.store.load_set_progress(student_id, item_set.id)
        version = progress.version if progress else 0
        histories: dict[str, ItemProgress] = dict(progress.items) if progress else {}

        new_reviews: list[ReviewEntry] = []
        practice: list[PracticeRecord] = []
        for index, raw in enumerate(submissions):
            try:
                submission = self._review_submission(raw)
                item = item_set.get(submission.item_id)
                if item is None:
                    raise ItemNotFound(submission.item_id)
                history = histories.get(item.id) or ItemProgress(item_id=item.id)
                record = self.scheduler.schedule(
                    history.last_review,
                    submission.performance,
                    item.difficulty,
                    now,
                    submission.time_spent,
                )
            except EngineError as e:
                if batch:
                    logger.warning(f"Rejected review batch for {student_id} at index {index}: {e}")
                    raise BatchRejected(index, e) from e
                raise

            histories[item.id] = history.with_review(record)
            new_reviews.append((item.id, record))
            practice.append(self._review_practice(student_id, item, record))

        rebuilt = self.estimator.rebuild_set_progress(student_id, item_set.id, histories, version)
        stored = await self.store.commit_reviews(rebuilt, new_reviews, practice, expected_version=version)
        self._invalidate(student_id)

        logger.info(
            f"Recorded {len(new_reviews)} review(s) for {student_id} on {item_set.id}; "
            f"set mastery {stored.overall_mastery:.1f}"
        )
        return [record for _, record in new_reviews]

    @staticmethod
    def _review_submission(raw: ReviewSubmission | Mapping[str, Any]) -> ReviewSubmission:
        if isinstance(raw, ReviewSubmission):
            return raw
        try:
            return ReviewSubmission.model_validate(raw)
        except ValidationError as e:
            raise InvalidRequest(f"Malformed review submission: {e}") from e

    @staticmethod
    def _review_practice(student_id: str, item: LearningItem, record: ReviewRecord) -> PracticeRecord:
        return PracticeRecord(
            student_id=student_id,
            topic=item.topic,
            subject=item.subject,
            total_questions=1,
            correct=record.performance,
            recorded_at=record.reviewed_at,
            time_spent_seconds=record.time_spent_seconds,
            subtopics={item.subtopic: (record.performance, 1)} if item.subtopic else {},
            difficulty=item.difficulty,
            source="review",
        )

    async def get_due_queue(self, student_id: str, set_id: str, limit: int | None = None) -> list[DueItem]:
        """Due items with their priority and new/due flag."""
        item_set = await self.store.get_item_set(set_id)
        progress = await self.store.load_set_progress(student_id, set_id)
        return select_due_items(
            item_set.items,
            progress,
            self.clock.now(),
            limit,
            struggling_threshold=self.settings.review_good_threshold,
        )

    async def get_due_items(self, student_id: str, set_id: str, limit: int | None = None) -> list[LearningItem]:
        """Items to review now: new first, then struggling, then other due items."""
        return [due.item for due in await self.get_due_queue(student_id, set_id, limit)]

    async def set_summary(self, student_id: str, set_id: str) -> SetSummary:
        item_set = await self.store.get_item_set(set_id)
        progress = await self.store.load_set_progress(student_id, set_id)
        return summarize_set(item_set.items, progress, self.clock.now(), self.settings, self.estimator)

    # =========================================================================
    # Attempts
    # =========================================================================

    async def create_attempt(
        self,
        student_id: str,
        item_ids: Sequence[str],
        name: str = "",
        attempt_id: str | None = None,
    ) -> Attempt:
        """Open an in-progress attempt over existing items."""
        if not item_ids:
            raise InvalidRequest("attempt needs at least one question")
        if len(set(item_ids)) != len(item_ids):
            raise InvalidRequest("attempt lists a question more than once")
        for item_id in item_ids:
            await self.store.find_item(item_id)

        attempt = Attempt(
            id=attempt_id or str(uuid.uuid4()),
            student_id=student_id,
            item_ids=tuple(item_ids),
            status=AttemptStatus.IN_PROGRESS,
            started_at=self.clock.now(),
            name=name,
        )
        stored = await self.store.create_attempt(attempt)
        logger.info(f"Started attempt {stored.id} for {student_id} ({len(item_ids)} questions)")
        return stored

    async def submit_attempt(
        self,
        attempt_id: str,
        answers: Sequence[AnswerSubmission | AnswerRecord | Mapping[str, Any]],
        time_spent: float | None = None,
    ) -> AttemptReport:
        """
        Score an attempt, persist the outcome and build recommendations.

        Args:
            attempt_id: Attempt to submit
            answers: Given answers; questions without an answer count as skipped
            time_spent: Total time on the attempt (sum of answer times if None)

        Returns:
            AttemptReport with evaluation, recommendations and comparison

        Raises:
            AttemptNotFound: Unknown attempt
            AttemptClosed: Attempt already completed, abandoned or expired
            InvalidAnswer / ItemNotFound: Nothing is persisted
        """
        attempt = await self.store.get_attempt(attempt_id)
        if not attempt.status.accepts_answers:
            raise AttemptClosed(attempt_id, attempt.status.value)
        if time_spent is not None and time_spent < 0:
            raise InvalidRequest(f"time spent must be non-negative, got {time_spent}")

        records = tuple(self._answer_record(a) for a in answers)
        items: dict[str, LearningItem] = {}
        for item_id in attempt.item_ids:
            _, item = await self.store.find_item(item_id)
            items[item_id] = item

        now = self.clock.now()
        candidate = replace(
            attempt,
            answers=records,
            total_time_spent=time_spent if time_spent is not None else sum(r.time_spent_seconds for r in records),
            submitted_at=now,
            status=AttemptStatus.COMPLETED,
        )
        evaluation = self.evaluator.evaluate(candidate, items, now)
        graded = replace(candidate, answers=self.evaluator.graded_answers(candidate, evaluation))
        practice = self.evaluator.practice_records(evaluation, items)

        previous = await self.store.recent_scores(
            attempt.student_id, self.settings.comparison_history_limit, exclude_attempt_id=attempt.id
        )
        comparison = self.evaluator.compare_to_previous(evaluation.score, previous)

        stored = await self.store.complete_attempt(graded, evaluation.score, practice, attempt.version)
        self._invalidate(attempt.student_id)
        logger.info(
            f"Attempt {attempt_id} scored {evaluation.score} "
            f"({evaluation.correct_answers}/{evaluation.total_questions}, {evaluation.performance_category.value})"
        )

        profile = await self.get_progress(attempt.student_id)
        report = self.recommender.recommend(profile=profile, evaluation=evaluation)
        return AttemptReport(attempt=stored, evaluation=evaluation, recommendations=report, comparison=comparison)

    @staticmethod
    def _answer_record(raw: AnswerSubmission | AnswerRecord | Mapping[str, Any]) -> AnswerRecord:
        if isinstance(raw, AnswerRecord):
            return raw
        if not isinstance(raw, AnswerSubmission):
            try:
                raw = AnswerSubmission.model_validate(raw)
            except ValidationError as e:
                raise InvalidRequest(f"Malformed answer submission: {e}") from e
        return AnswerRecord(question_id=raw.question_id, given_answer=raw.answer, time_spent_seconds=raw.time_spent)

    # =========================================================================
    # Progress and guidance
    # =========================================================================

    async def get_progress(self, student_id: str, window_days: int | None = None) -> PerformanceProfile:
        """PerformanceProfile over the last ``window_days`` (cached per student and window)."""
        window = self.settings.default_window_days if window_days is None else window_days
        if window <= 0:
            raise InvalidRequest(f"window must be positive, got {window_days}")

        key = f"profile:{student_id}:{window}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        now = self.clock.now()
        records = await self.store.list_practice_records(student_id, since=now - timedelta(days=window))
        profile = self.analyzer.analyze(student_id, records, now, window)
        self.cache.set(key, profile)
        return profile

    async def recommend(
        self,
        student_id: str,
        window_days: int | None = None,
        limit: int | None = None,
    ) -> RecommendationReport:
        profile = await self.get_progress(student_id, window_days)
        return self.recommender.recommend(profile=profile, limit=limit)

    async def adjust_difficulty(
        self,
        student_id: str,
        topic: str,
        base: Difficulty | str = Difficulty.MEDIUM,
    ) -> Difficulty:
        """Difficulty for the next questions on ``topic`` from recent accuracy."""
        now = self.clock.now()
        since = now - timedelta(days=self.settings.difficulty_window_days)
        records = await self.store.list_practice_records(student_id, since=since)
        return self.adapter.adapt(base, records, now, topic)

    async def build_practice_set(
        self,
        student_id: str,
        topic: str,
        subject: str,
        count: int,
        question_type: QuestionType | str = QuestionType.SINGLE_CHOICE,
        base_difficulty: Difficulty | str = Difficulty.MEDIUM,
        set_id: str | None = None,
    ) -> ItemSet:
        """
        Generate a practice set at the student's adapted difficulty.

        Generated item ids are prefixed with the set id so regenerated
        fallback content never collides across sets.
        """
        difficulty = await self.adjust_difficulty(student_id, topic, base_difficulty)
        items = await self.content.generate(topic, difficulty, count, QuestionType(question_type), subject)
        set_id = set_id or str(uuid.uuid4())
        scoped = [replace(item, id=f"{set_id}:{item.id}") for item in items]
        return await self.register_item_set(set_id, f"{subject} - {topic} ({difficulty.value})", scoped, student_id)

    def _invalidate(self, student_id: str) -> None:
        self.cache.delete_prefix(f"profile:{student_id}:")
