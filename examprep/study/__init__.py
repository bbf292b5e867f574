"""
Study Module - spaced repetition and mastery tracking.

Components:
- ReviewScheduler: performance-bucketed review intervals
- MasteryEstimator: mastery score from review history
- review_queue: due-item prioritisation and set statistics
"""

from .mastery_estimator import MasteryEstimator, MasteryLevel
from .review_queue import DueItem, SetSummary, select_due_items, summarize_set
from .scheduler import ReviewScheduler, validate_performance

__all__ = [
    "DueItem",
    "MasteryEstimator",
    "MasteryLevel",
    "ReviewScheduler",
    "SetSummary",
    "select_due_items",
    "summarize_set",
    "validate_performance",
]
