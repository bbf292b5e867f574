"""
Request payloads accepted by the engine operations.

Range checks on performance are left to the scheduler so callers get the
typed ``InvalidPerformance`` error; these models only fix the shape.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from examprep.core.models import LearningItem


class ReviewSubmission(BaseModel):
    """One flashcard review."""

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(min_length=1)
    performance: float
    time_spent: float = Field(default=0.0, ge=0)

    @field_validator("performance", mode="before")
    @classmethod
    def _reject_non_numbers(cls, value: Any) -> Any:
        if isinstance(value, (bool, str, bytes)):
            raise ValueError(f"performance must be a number, got {type(value).__name__}")
        return value


class AnswerSubmission(BaseModel):
    """One answer inside a test submission; ``answer=None`` means skipped."""

    model_config = ConfigDict(frozen=True)

    question_id: str = Field(min_length=1)
    answer: Any = None
    time_spent: float = Field(default=0.0, ge=0)


class ItemPayload(BaseModel):
    """A learning item as loaded from JSON (CLI import, external content)."""

    id: str = Field(min_length=1)
    topic: str = Field(min_length=1)
    subject: str = "General"
    question_type: str = "single_choice"
    answer_key: Any = None
    difficulty: str = "medium"
    subtopic: str | None = None
    marks: float = Field(default=1.0, ge=0)
    negative_marks: float = Field(default=0.0, ge=0)
    allotted_seconds: int | None = Field(default=None, gt=0)
    cognitive_level: str = "understand"
    prompt: str = ""
    options: list[str] = Field(default_factory=list)
    explanation: str = ""

    def to_item(self) -> LearningItem:
        return LearningItem(**self.model_dump())
