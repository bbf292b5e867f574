"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from examprep.config import Settings
from examprep.core.clock import FixedClock
from examprep.core.models import (
    CognitiveLevel,
    Difficulty,
    LearningItem,
    PracticeRecord,
    QuestionType,
    ReviewRecord,
)
from examprep.db.store import InMemoryStore
from examprep.service import MasteryEngine

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (engine + store)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture
def settings():
    """Default settings, isolated from any .env or environment overrides."""
    return Settings(_env_file=None)


@pytest.fixture
def now():
    return START


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def engine(store, settings, clock):
    return MasteryEngine(store, settings=settings, clock=clock)


def make_item(item_id: str, **overrides) -> LearningItem:
    """Single-choice item with answer 'A' unless overridden."""
    fields = {
        "id": item_id,
        "topic": "Kinematics",
        "subject": "Physics",
        "question_type": QuestionType.SINGLE_CHOICE,
        "answer_key": "A",
        "difficulty": Difficulty.MEDIUM,
        "subtopic": None,
        "marks": 1.0,
        "negative_marks": 0.0,
        "allotted_seconds": 60,
        "cognitive_level": CognitiveLevel.UNDERSTAND,
    }
    fields.update(overrides)
    return LearningItem(**fields)


def make_review(reviewed_at: datetime, performance: float = 0.8, interval: int = 1) -> ReviewRecord:
    return ReviewRecord(
        interval_days=interval,
        next_review_at=reviewed_at + timedelta(days=interval),
        performance=performance,
        reviewed_at=reviewed_at,
    )


def make_practice(
    recorded_at: datetime,
    topic: str = "Kinematics",
    correct: float = 7,
    total: int = 10,
    subject: str = "Physics",
    subtopics=None,
    student_id: str = "s1",
) -> PracticeRecord:
    return PracticeRecord(
        student_id=student_id,
        topic=topic,
        subject=subject,
        total_questions=total,
        correct=correct,
        recorded_at=recorded_at,
        subtopics=subtopics or {},
    )

