"""
Core value types for the adaptive mastery engine.

Every record here is immutable. Review history is append-only: an
``ItemProgress`` grows by returning a new object with one more
``ReviewRecord``; aggregates such as ``SetProgress`` and
``PerformanceProfile`` are derived views rebuilt from that history.

Scales:
- performance, rolling accuracy: fractions in [0, 1]
- mastery, accuracy percentages, scores, consistency: [0, 100]
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .exceptions import InvalidItem


# =============================================================================
# Enumerations
# =============================================================================


class Difficulty(str, Enum):
    """Question difficulty, totally ordered easy < medium < hard < expert."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return _DIFFICULTY_ORDER.index(self)

    def promote(self) -> Difficulty:
        """One level harder, or unchanged at the ceiling."""
        return _DIFFICULTY_ORDER[min(self.rank + 1, len(_DIFFICULTY_ORDER) - 1)]

    def demote(self) -> Difficulty:
        """One level easier, or unchanged at the floor."""
        return _DIFFICULTY_ORDER[max(self.rank - 1, 0)]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Difficulty):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Difficulty):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Difficulty):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Difficulty):
            return NotImplemented
        return self.rank >= other.rank


_DIFFICULTY_ORDER = (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD, Difficulty.EXPERT)


class QuestionType(str, Enum):
    """Answer-key shapes the evaluator knows how to check."""

    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    NUMERIC = "numeric"
    FREE_TEXT = "free_text"


class CognitiveLevel(str, Enum):
    """Bloom-style reasoning demand of a question."""

    REMEMBER = "remember"
    UNDERSTAND = "understand"
    APPLY = "apply"
    ANALYZE = "analyze"
    EVALUATE = "evaluate"
    CREATE = "create"


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    EXPIRED = "expired"

    @property
    def accepts_answers(self) -> bool:
        return self in (AttemptStatus.IN_PROGRESS, AttemptStatus.PAUSED)


class TimeClass(str, Enum):
    """Time-management bucket of a single answer."""

    TOO_FAST = "too_fast"
    OPTIMAL = "optimal"
    TOO_SLOW = "too_slow"


class PerformanceCategory(str, Enum):
    """Banding of an attempt score."""

    EXCELLENT = "excellent"  # >= 90
    GOOD = "good"  # >= 75
    AVERAGE = "average"  # >= 60
    NEEDS_IMPROVEMENT = "needs_improvement"  # >= 40
    POOR = "poor"

    @classmethod
    def from_score(cls, score: float) -> PerformanceCategory:
        if score >= 90:
            return cls.EXCELLENT
        elif score >= 75:
            return cls.GOOD
        elif score >= 60:
            return cls.AVERAGE
        elif score >= 40:
            return cls.NEEDS_IMPROVEMENT
        return cls.POOR

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


def _coerce(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        raise InvalidItem(f"Invalid {field_name}: {value!r}") from e


# =============================================================================
# Learning Items
# =============================================================================


@dataclass(frozen=True)
class LearningItem:
    """A flashcard or question together with its answer key."""

    id: str
    topic: str
    subject: str
    question_type: QuestionType
    answer_key: Any = None
    difficulty: Difficulty = Difficulty.MEDIUM
    subtopic: str | None = None
    marks: float = 1.0
    negative_marks: float = 0.0
    allotted_seconds: int | None = None
    cognitive_level: CognitiveLevel = CognitiveLevel.UNDERSTAND
    prompt: str = ""
    options: tuple[str, ...] = ()
    explanation: str = ""
    is_fallback: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidItem("Item id is required")
        if not self.topic:
            raise InvalidItem(f"Item {self.id} has no topic")
        object.__setattr__(self, "question_type", _coerce(QuestionType, self.question_type, "question type"))
        object.__setattr__(self, "difficulty", _coerce(Difficulty, self.difficulty, "difficulty"))
        object.__setattr__(
            self, "cognitive_level", _coerce(CognitiveLevel, self.cognitive_level, "cognitive level")
        )
        if self.marks < 0:
            raise InvalidItem(f"Item {self.id} has negative marks")
        if self.negative_marks < 0:
            raise InvalidItem(f"Item {self.id} has a negative penalty value")
        if self.allotted_seconds is not None and self.allotted_seconds <= 0:
            raise InvalidItem(f"Item {self.id} has non-positive allotted time")
        if isinstance(self.options, list):
            object.__setattr__(self, "options", tuple(self.options))


# =============================================================================
# Review History
# =============================================================================


@dataclass(frozen=True)
class ReviewRecord:
    """One review outcome and the interval it produced."""

    interval_days: int
    next_review_at: datetime
    performance: float
    reviewed_at: datetime
    time_spent_seconds: float = 0.0

    def is_due(self, now: datetime) -> bool:
        return self.next_review_at <= now


@dataclass(frozen=True)
class ItemProgress:
    """Append-only review history of one item."""

    item_id: str
    reviews: tuple[ReviewRecord, ...] = ()

    @property
    def total_reviews(self) -> int:
        return len(self.reviews)

    @property
    def last_review(self) -> ReviewRecord | None:
        return self.reviews[-1] if self.reviews else None

    @property
    def last_reviewed_at(self) -> datetime | None:
        return self.reviews[-1].reviewed_at if self.reviews else None

    def with_review(self, record: ReviewRecord) -> ItemProgress:
        return replace(self, reviews=self.reviews + (record,))


@dataclass(frozen=True)
class SetProgress:
    """Derived view over every item's history in one set for one student."""

    student_id: str
    set_id: str
    items: Mapping[str, ItemProgress] = field(default_factory=dict)
    overall_mastery: float = 0.0
    total_reviews: int = 0
    last_reviewed_at: datetime | None = None
    version: int = 0

    def item(self, item_id: str) -> ItemProgress | None:
        return self.items.get(item_id)


@dataclass(frozen=True)
class ItemSet:
    """An ordered collection of learning items (flashcard deck or question bank)."""

    id: str
    name: str
    items: tuple[LearningItem, ...]
    owner_id: str | None = None

    def get(self, item_id: str) -> LearningItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


# =============================================================================
# Attempts
# =============================================================================


@dataclass(frozen=True)
class AnswerRecord:
    """A learner's answer; ``is_correct`` is filled in by evaluation."""

    question_id: str
    given_answer: Any = None
    time_spent_seconds: float = 0.0
    is_correct: bool | None = None


@dataclass(frozen=True)
class Attempt:
    """One sitting of a test."""

    id: str
    student_id: str
    item_ids: tuple[str, ...]
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    answers: tuple[AnswerRecord, ...] = ()
    total_time_spent: float = 0.0
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    name: str = ""
    version: int = 0


@dataclass(frozen=True)
class PracticeRecord:
    """
    Topic-level outcome fed to progress analysis and difficulty adaptation.

    An evaluated attempt yields one record per topic; a flashcard review
    yields one record with ``total_questions=1`` and ``correct`` equal to the
    review performance.
    """

    student_id: str
    topic: str
    subject: str
    total_questions: int
    correct: float
    recorded_at: datetime
    time_spent_seconds: float = 0.0
    subtopics: Mapping[str, tuple[float, int]] = field(default_factory=dict)
    difficulty: Difficulty | None = None
    source: str = "attempt"

    @property
    def accuracy(self) -> float:
        """Fraction correct, 0 when the record holds no questions."""
        if self.total_questions <= 0:
            return 0.0
        return self.correct / self.total_questions


# =============================================================================
# Evaluation Results
# =============================================================================


@dataclass(frozen=True)
class PerformanceBucket:
    correct: int
    total: int

    @property
    def percentage(self) -> float:
        return (self.correct / self.total) * 100 if self.total else 0.0


@dataclass(frozen=True)
class AreaScore:
    """A topic or subject with its accuracy percentage."""

    name: str
    accuracy: float


@dataclass(frozen=True)
class TimeManagement:
    too_fast: int = 0
    optimal: int = 0
    too_slow: int = 0
    average_time_per_question: float = 0.0


@dataclass(frozen=True)
class AnalyticsBreakdown:
    by_topic: Mapping[str, PerformanceBucket]
    by_subtopic: Mapping[str, PerformanceBucket]
    by_subject: Mapping[str, PerformanceBucket]
    by_difficulty: Mapping[Difficulty, PerformanceBucket]
    by_cognitive_level: Mapping[CognitiveLevel, PerformanceBucket]
    weak_areas: tuple[AreaScore, ...]
    strong_areas: tuple[AreaScore, ...]
    time_management: TimeManagement


@dataclass(frozen=True)
class QuestionResult:
    question_id: str
    is_correct: bool | None
    marks_awarded: float
    max_marks: float
    time_spent_seconds: float
    time_class: TimeClass | None
    answered: bool = True

    @property
    def needs_manual_review(self) -> bool:
        return self.is_correct is None and self.answered


@dataclass(frozen=True)
class EvaluationResult:
    attempt_id: str
    student_id: str
    score: float
    marks_obtained: float
    max_marks: float
    total_questions: int
    graded_questions: int
    correct_answers: int
    incorrect_answers: int
    unanswered: int
    pending_review: int
    questions: tuple[QuestionResult, ...]
    analytics: AnalyticsBreakdown
    performance_category: PerformanceCategory
    passed: bool
    total_time_spent: float
    evaluated_at: datetime

    @property
    def accuracy(self) -> float:
        """Percentage of auto-gradable questions answered correctly."""
        if not self.graded_questions:
            return 0.0
        return (self.correct_answers / self.graded_questions) * 100


@dataclass(frozen=True)
class ComparativeAnalysis:
    current_score: float
    previous_average: float
    improvement: float
    trend: Trend
    tests_compared: int


# =============================================================================
# Progress Profiles
# =============================================================================


@dataclass(frozen=True)
class TopicMastery:
    topic: str
    mastery: float  # 0-100
    confidence: float  # 0-100
    attempts: int
    questions: int
    last_practiced: datetime | None


@dataclass(frozen=True)
class PerformanceProfile:
    """Time-windowed summary of one student's practice history."""

    student_id: str
    window_days: int
    generated_at: datetime
    accuracy: float
    consistency_score: float
    improvement_rate: float
    total_questions: int
    topic_mastery: Mapping[str, TopicMastery]
    weak_areas: tuple[AreaScore, ...]
    strong_areas: tuple[AreaScore, ...]
    weak_subtopics: tuple[AreaScore, ...] = ()
    subject_accuracy: Mapping[str, float] = field(default_factory=dict)
    active_days: int = 0

    @property
    def has_history(self) -> bool:
        return self.total_questions > 0


# =============================================================================
# Recommendations
# =============================================================================


@dataclass(frozen=True)
class Recommendation:
    kind: str
    priority: Priority
    title: str
    message: str
    action: str
    target: str | None = None


@dataclass(frozen=True)
class LearningPhase:
    name: str
    duration: str
    focus: str
    activities: tuple[str, ...]
    min_weeks: int


@dataclass(frozen=True)
class LearningPath:
    current_level: str
    phases: tuple[LearningPhase, ...]

    @property
    def estimated_weeks(self) -> int:
        return sum(phase.min_weeks for phase in self.phases)


@dataclass(frozen=True)
class SubjectPlan:
    subject: str
    weekly_hours: int
    focus: str


@dataclass(frozen=True)
class ImprovementPlan:
    duration: str
    focus_areas: tuple[str, ...]
    schedule: tuple[SubjectPlan, ...]


@dataclass(frozen=True)
class RecommendationReport:
    recommendations: tuple[Recommendation, ...]
    learning_path: LearningPath
    improvement_plan: ImprovementPlan | None = None
