"""
Core types shared by every engine component.

- models: immutable value types and enums
- exceptions: typed error hierarchy
- clock: UTC time sources
- classification: weak/strong area rules
"""

from .clock import Clock, FixedClock, SystemClock
from .exceptions import (
    AttemptClosed,
    AttemptNotFound,
    BatchRejected,
    ConcurrencyConflict,
    EngineError,
    InvalidAnswer,
    InvalidItem,
    InvalidPerformance,
    InvalidRequest,
    ItemNotFound,
    SetNotFound,
    StoreError,
)
from .models import (
    AnswerRecord,
    Attempt,
    AttemptStatus,
    CognitiveLevel,
    Difficulty,
    EvaluationResult,
    ItemProgress,
    ItemSet,
    LearningItem,
    PerformanceProfile,
    PracticeRecord,
    QuestionType,
    ReviewRecord,
    SetProgress,
)

__all__ = [
    "AnswerRecord",
    "Attempt",
    "AttemptClosed",
    "AttemptNotFound",
    "AttemptStatus",
    "BatchRejected",
    "Clock",
    "CognitiveLevel",
    "ConcurrencyConflict",
    "Difficulty",
    "EngineError",
    "EvaluationResult",
    "FixedClock",
    "InvalidAnswer",
    "InvalidItem",
    "InvalidPerformance",
    "InvalidRequest",
    "ItemNotFound",
    "ItemProgress",
    "ItemSet",
    "LearningItem",
    "PerformanceProfile",
    "PracticeRecord",
    "QuestionType",
    "ReviewRecord",
    "SetNotFound",
    "SetProgress",
    "StoreError",
    "SystemClock",
]
