"""
Integration tests for MasteryEngine over the in-memory store.

Exercises the review loop, batch atomicity, test submission, progress
caching and optimistic version checks end to end.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from examprep.core.exceptions import (
    AttemptClosed,
    AttemptNotFound,
    BatchRejected,
    ConcurrencyConflict,
    InvalidAnswer,
    InvalidItem,
    InvalidPerformance,
    InvalidRequest,
    ItemNotFound,
    SetNotFound,
)
from examprep.core.models import AttemptStatus, Difficulty, QuestionType, Trend
from examprep.db.store import InMemoryStore
from examprep.schemas import ReviewSubmission
from examprep.service import MasteryEngine
from tests.conftest import make_item


class StaleReadStore(InMemoryStore):
    """Serves a previously captured progress snapshot to simulate a concurrent writer."""

    def __init__(self):
        super().__init__()
        self.stale = None

    async def load_set_progress(self, student_id, set_id):
        if self.stale is not None:
            return self.stale
        return await super().load_set_progress(student_id, set_id)


async def register_deck(engine, set_id="deck", count=3):
    items = [make_item(f"{set_id}-c{i}") for i in range(1, count + 1)]
    await engine.register_item_set(set_id, "Kinematics deck", items)
    return items


class TestItemSets:
    @pytest.mark.asyncio
    async def test_duplicate_item_ids_rejected(self, engine):
        with pytest.raises(InvalidItem):
            await engine.register_item_set("deck", "dup", [make_item("a"), make_item("a")])

    @pytest.mark.asyncio
    async def test_empty_set_rejected(self, engine):
        with pytest.raises(InvalidRequest):
            await engine.register_item_set("deck", "empty", [])

    @pytest.mark.asyncio
    async def test_bad_answer_key_rejected(self, engine):
        item = make_item("n1", question_type=QuestionType.NUMERIC, answer_key="lots")
        with pytest.raises(InvalidAnswer):
            await engine.register_item_set("deck", "bad", [item])

    @pytest.mark.asyncio
    async def test_unknown_set(self, engine):
        with pytest.raises(SetNotFound):
            await engine.get_due_items("s1", "missing")


class TestReviewLoop:
    @pytest.mark.asyncio
    async def test_due_round_trip(self, engine, clock):
        await register_deck(engine)

        assert [i.id for i in await engine.get_due_items("s1", "deck")] == ["deck-c1", "deck-c2", "deck-c3"]

        first = await engine.submit_review("s1", "deck-c1", 0.9)
        await engine.submit_review("s1", "deck-c2", 0.3, time_spent=12)

        assert first.interval_days == 1
        assert first.next_review_at == clock.now() + timedelta(days=1)
        assert [i.id for i in await engine.get_due_items("s1", "deck")] == ["deck-c3"]

        clock.advance(days=1)
        queue = await engine.get_due_queue("s1", "deck")
        assert [(d.item.id, d.priority) for d in queue] == [("deck-c3", 1), ("deck-c2", 2), ("deck-c1", 3)]

        second = await engine.submit_review("s1", "deck-c1", 0.9)
        assert second.interval_days == 2
        assert second.next_review_at == clock.now() + timedelta(days=2)

    @pytest.mark.asyncio
    async def test_progress_is_per_student(self, engine):
        await register_deck(engine)
        await engine.submit_review("s1", "deck-c1", 0.9)

        assert len(await engine.get_due_items("s2", "deck")) == 3
        assert len(await engine.get_due_items("s1", "deck")) == 2

    @pytest.mark.asyncio
    async def test_set_progress_rebuilt_on_commit(self, engine, store):
        await register_deck(engine)
        await engine.submit_review("s1", "deck-c1", 1.0)
        await engine.submit_review("s1", "deck-c2", 0.5)

        progress = await store.load_set_progress("s1", "deck")
        assert progress.version == 2
        assert progress.total_reviews == 2
        assert progress.overall_mastery == engine.estimator.estimate_set(progress.items.values())

    @pytest.mark.asyncio
    async def test_summary(self, engine, clock):
        await register_deck(engine)
        await engine.submit_review("s1", "deck-c1", 0.9)

        summary = await engine.set_summary("s1", "deck")
        assert summary.total_items == 3
        assert summary.new_items == 2
        assert summary.total_reviews == 1
        assert summary.retention_rate == 100.0
        assert summary.review_streak == 1

    @pytest.mark.asyncio
    async def test_unknown_item(self, engine):
        await register_deck(engine)
        with pytest.raises(ItemNotFound):
            await engine.submit_review("s1", "nope", 0.5)

    @pytest.mark.asyncio
    async def test_single_invalid_review_writes_nothing(self, engine, store):
        await register_deck(engine)
        with pytest.raises(InvalidPerformance):
            await engine.submit_review("s1", "deck-c1", 1.5)
        assert await store.load_set_progress("s1", "deck") is None

    @pytest.mark.asyncio
    async def test_string_performance_rejected(self, engine, store):
        await register_deck(engine)
        with pytest.raises(InvalidRequest):
            await engine.submit_review("s1", "deck-c1", "0.9")
        assert await store.load_set_progress("s1", "deck") is None

    @pytest.mark.asyncio
    async def test_negative_due_limit(self, engine):
        await register_deck(engine)
        with pytest.raises(InvalidRequest):
            await engine.get_due_items("s1", "deck", limit=-1)


class TestBatchReviews:
    @pytest.mark.asyncio
    async def test_batch_commits_every_review(self, engine, store):
        await register_deck(engine, count=5)
        submissions = [ReviewSubmission(item_id=f"deck-c{i}", performance=0.8) for i in range(1, 6)]

        records = await engine.submit_reviews("s1", "deck", submissions)

        assert len(records) == 5
        progress = await store.load_set_progress("s1", "deck")
        assert progress.total_reviews == 5
        assert progress.version == 1
        assert len(await store.list_practice_records("s1")) == 5

    @pytest.mark.asyncio
    async def test_invalid_member_rejects_whole_batch(self, engine, store):
        await register_deck(engine, count=5)
        submissions = [
            {"item_id": f"deck-c{i}", "performance": 1.5 if i == 3 else 0.8} for i in range(1, 6)
        ]

        with pytest.raises(BatchRejected) as exc_info:
            await engine.submit_reviews("s1", "deck", submissions)

        assert exc_info.value.index == 2
        assert isinstance(exc_info.value.cause, InvalidPerformance)
        assert await store.load_set_progress("s1", "deck") is None
        assert await store.list_practice_records("s1") == []

    @pytest.mark.asyncio
    async def test_unknown_item_in_batch(self, engine):
        await register_deck(engine)
        with pytest.raises(BatchRejected) as exc_info:
            await engine.submit_reviews(
                "s1", "deck", [{"item_id": "deck-c1", "performance": 0.5}, {"item_id": "x", "performance": 0.5}]
            )
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, ItemNotFound)

    @pytest.mark.asyncio
    async def test_malformed_member(self, engine):
        await register_deck(engine)
        with pytest.raises(BatchRejected) as exc_info:
            await engine.submit_reviews("s1", "deck", [{"item_id": "deck-c1", "performance": True}])
        assert isinstance(exc_info.value.cause, InvalidRequest)

    @pytest.mark.asyncio
    async def test_string_performance_in_batch(self, engine, store):
        await register_deck(engine)
        with pytest.raises(BatchRejected) as exc_info:
            await engine.submit_reviews(
                "s1", "deck", [{"item_id": "deck-c1", "performance": 0.5}, {"item_id": "deck-c2", "performance": "0.9"}]
            )
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, InvalidRequest)
        assert await store.list_practice_records("s1") == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, engine):
        await register_deck(engine)
        with pytest.raises(InvalidRequest):
            await engine.submit_reviews("s1", "deck", [])


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_stale_commit_conflicts(self, settings, clock):
        store = StaleReadStore()
        engine = MasteryEngine(store, settings=settings, clock=clock)
        await register_deck(engine)

        await engine.submit_review("s1", "deck-c1", 0.9)
        snapshot = await store.load_set_progress("s1", "deck")
        await engine.submit_review("s1", "deck-c2", 0.9)

        store.stale = snapshot
        with pytest.raises(ConcurrencyConflict) as exc_info:
            await engine.submit_review("s1", "deck-c3", 0.9)

        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        store.stale = None
        progress = await store.load_set_progress("s1", "deck")
        assert progress.total_reviews == 2
        assert progress.item("deck-c3") is None


class TestAttempts:
    @pytest_asyncio.fixture
    async def bank(self, engine):
        items = [make_item(f"q{i}") for i in range(10)]
        await engine.register_item_set("bank", "Kinematics test", items)
        return items

    @staticmethod
    def answers(correct):
        return [
            {"question_id": f"q{i}", "answer": "A" if i < correct else "B", "time_spent": 45}
            for i in range(10)
        ]

    @pytest.mark.asyncio
    async def test_submit_attempt_report(self, engine, store, bank):
        attempt = await engine.create_attempt("s1", [i.id for i in bank], name="Mock 1", attempt_id="att-1")
        assert attempt.status is AttemptStatus.IN_PROGRESS

        report = await engine.submit_attempt("att-1", self.answers(7))

        assert report.evaluation.score == 70.0
        assert report.evaluation.correct_answers == 7
        assert report.attempt.status is AttemptStatus.COMPLETED
        assert report.attempt.total_time_spent == 450
        assert report.comparison is None
        assert [a.is_correct for a in report.attempt.answers][:8] == [True] * 7 + [False]
        assert report.recommendations.recommendations[0].kind == "practice"
        assert report.recommendations.improvement_plan is not None

        records = await store.list_practice_records("s1")
        assert len(records) == 1
        assert records[0].correct == 7

    @pytest.mark.asyncio
    async def test_comparison_with_previous_attempt(self, engine, clock, bank):
        ids = [i.id for i in bank]
        await engine.create_attempt("s1", ids, attempt_id="att-1")
        await engine.submit_attempt("att-1", self.answers(7))

        clock.advance(days=1)
        await engine.create_attempt("s1", ids, attempt_id="att-2")
        report = await engine.submit_attempt("att-2", self.answers(10))

        assert report.comparison.previous_average == 70.0
        assert report.comparison.improvement == 30.0
        assert report.comparison.trend is Trend.IMPROVING

    @pytest.mark.asyncio
    async def test_resubmission_rejected(self, engine, bank):
        await engine.create_attempt("s1", [i.id for i in bank], attempt_id="att-1")
        await engine.submit_attempt("att-1", self.answers(7))

        with pytest.raises(AttemptClosed):
            await engine.submit_attempt("att-1", self.answers(10))

    @pytest.mark.asyncio
    async def test_invalid_answer_persists_nothing(self, engine, store, bank):
        await engine.create_attempt("s1", [i.id for i in bank], attempt_id="att-1")
        answers = self.answers(7)
        answers[4]["answer"] = ["A", "B"]

        with pytest.raises(InvalidAnswer):
            await engine.submit_attempt("att-1", answers)

        attempt = await store.get_attempt("att-1")
        assert attempt.status is AttemptStatus.IN_PROGRESS
        assert await store.list_practice_records("s1") == []

    @pytest.mark.asyncio
    async def test_unknown_attempt(self, engine):
        with pytest.raises(AttemptNotFound):
            await engine.submit_attempt("nope", [])

    @pytest.mark.asyncio
    async def test_attempt_over_unknown_item(self, engine, bank):
        with pytest.raises(ItemNotFound):
            await engine.create_attempt("s1", ["q0", "ghost"])

    @pytest.mark.asyncio
    async def test_duplicate_questions_rejected(self, engine, bank):
        with pytest.raises(InvalidRequest):
            await engine.create_attempt("s1", ["q0", "q0"])


class TestGuidance:
    @pytest.mark.asyncio
    async def test_progress_is_cached_until_new_activity(self, engine):
        await register_deck(engine)

        empty = await engine.get_progress("s1")
        assert not empty.has_history
        assert await engine.get_progress("s1") is empty

        await engine.submit_review("s1", "deck-c1", 0.5)
        refreshed = await engine.get_progress("s1")

        assert refreshed is not empty
        assert refreshed.total_questions == 1
        assert refreshed.accuracy == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_non_positive_window(self, engine):
        with pytest.raises(InvalidRequest):
            await engine.get_progress("s1", window_days=0)

    @pytest.mark.asyncio
    async def test_recommend_for_new_student(self, engine):
        report = await engine.recommend("s1")
        kinds = [r.kind for r in report.recommendations]
        assert kinds == ["foundation", "study_consistency"]
        assert report.learning_path.phases[0].name == "Foundation"

    @pytest.mark.asyncio
    async def test_difficulty_follows_recent_accuracy(self, engine):
        items = [make_item(f"q{i}") for i in range(10)]
        await engine.register_item_set("bank", "test", items)
        assert await engine.adjust_difficulty("s1", "Kinematics") is Difficulty.MEDIUM

        await engine.create_attempt("s1", [i.id for i in items], attempt_id="att-1")
        await engine.submit_attempt("att-1", [{"question_id": i.id, "answer": "A"} for i in items])

        assert await engine.adjust_difficulty("s1", "Kinematics") is Difficulty.HARD
        assert await engine.adjust_difficulty("s1", "Optics") is Difficulty.MEDIUM

    @pytest.mark.asyncio
    async def test_build_practice_set(self, engine, store):
        item_set = await engine.build_practice_set(
            "s1", "Optics", "Physics", 4, QuestionType.NUMERIC, set_id="practice-1"
        )

        assert len(item_set.items) == 4
        assert all(i.id.startswith("practice-1:") for i in item_set.items)
        assert all(i.difficulty is Difficulty.MEDIUM for i in item_set.items)
        assert (await store.get_item_set("practice-1")).items == item_set.items

        again = await engine.build_practice_set("s1", "Optics", "Physics", 4, QuestionType.NUMERIC, set_id="practice-2")
        assert not {i.id for i in again.items} & {i.id for i in item_set.items}
