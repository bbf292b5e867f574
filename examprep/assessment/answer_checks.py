"""
Answer checkers for each question type.

Each question type has a checker registered with ``@register`` that:
- validate_key(): rejects an answer key of the wrong shape
- validate_answer(): rejects a given answer of the wrong shape
- is_correct(): decides correctness (None when it needs manual review)
"""

from __future__ import annotations

import math
from collections.abc import Collection
from numbers import Real
from typing import Any, Protocol

from examprep.core.exceptions import InvalidAnswer
from examprep.core.models import LearningItem, QuestionType


class AnswerChecker(Protocol):
    def validate_key(self, item: LearningItem) -> None: ...

    def validate_answer(self, item: LearningItem, given: Any) -> None: ...

    def is_correct(self, item: LearningItem, given: Any, tolerance: float) -> bool | None: ...


# Checker registry - populated by @register decorator
CHECKERS: dict[QuestionType, AnswerChecker] = {}


def register(question_type: QuestionType):
    """Decorator to register an answer checker."""
    def decorator(cls):
        CHECKERS[question_type] = cls()
        return cls
    return decorator


def get_checker(question_type: str | QuestionType) -> AnswerChecker:
    """Get the checker for a question type."""
    try:
        question_type = QuestionType(question_type)
    except ValueError as e:
        raise InvalidAnswer(f"Unsupported question type: {question_type!r}") from e
    return CHECKERS[question_type]


def _is_choice(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Real):
        try:
            return float(value)
        except OverflowError:
            return None
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


@register(QuestionType.SINGLE_CHOICE)
class SingleChoiceChecker:
    """Exact match against one option."""

    def validate_key(self, item: LearningItem) -> None:
        if not _is_choice(item.answer_key):
            raise InvalidAnswer(f"Item {item.id}: single-choice key must be one option")

    def validate_answer(self, item: LearningItem, given: Any) -> None:
        if not _is_choice(given):
            raise InvalidAnswer(f"Item {item.id}: single-choice answer must be one option, got {given!r}")

    def is_correct(self, item: LearningItem, given: Any, tolerance: float) -> bool:
        return given == item.answer_key


@register(QuestionType.MULTI_CHOICE)
class MultiChoiceChecker:
    """Given options must equal the key in both size and membership."""

    @staticmethod
    def _options(value: Any) -> bool:
        return (
            isinstance(value, Collection)
            and not isinstance(value, (str, bytes, dict))
            and all(_is_choice(v) for v in value)
        )

    def validate_key(self, item: LearningItem) -> None:
        if not self._options(item.answer_key) or not item.answer_key:
            raise InvalidAnswer(f"Item {item.id}: multi-choice key must be a non-empty list of options")

    def validate_answer(self, item: LearningItem, given: Any) -> None:
        if not self._options(given):
            raise InvalidAnswer(f"Item {item.id}: multi-choice answer must be a list of options, got {given!r}")

    def is_correct(self, item: LearningItem, given: Any, tolerance: float) -> bool:
        given = list(given)
        key = list(item.answer_key)
        return len(given) == len(key) and set(given) == set(key)


@register(QuestionType.NUMERIC)
class NumericChecker:
    """Relative tolerance: |given - key| <= tolerance * |key|."""

    def validate_key(self, item: LearningItem) -> None:
        key = _as_number(item.answer_key)
        if key is None or not math.isfinite(key):
            raise InvalidAnswer(f"Item {item.id}: numeric key must be a finite number")

    def validate_answer(self, item: LearningItem, given: Any) -> None:
        value = _as_number(given)
        if value is None or not math.isfinite(value):
            raise InvalidAnswer(f"Item {item.id}: numeric answer must be a finite number, got {given!r}")

    def is_correct(self, item: LearningItem, given: Any, tolerance: float) -> bool:
        key = _as_number(item.answer_key)
        value = _as_number(given)
        return abs(value - key) <= abs(key * tolerance)


@register(QuestionType.FREE_TEXT)
class FreeTextChecker:
    """Never auto-graded; flagged for manual review."""

    def validate_key(self, item: LearningItem) -> None:
        if item.answer_key is not None and not isinstance(item.answer_key, str):
            raise InvalidAnswer(f"Item {item.id}: free-text key must be text")

    def validate_answer(self, item: LearningItem, given: Any) -> None:
        if not isinstance(given, str):
            raise InvalidAnswer(f"Item {item.id}: free-text answer must be text, got {given!r}")

    def is_correct(self, item: LearningItem, given: Any, tolerance: float) -> None:
        return None


def validate_item(item: LearningItem) -> LearningItem:
    """Check that an item's answer key fits its question type."""
    get_checker(item.question_type).validate_key(item)
    return item
