"""Assessment Module - answer checking and attempt scoring."""

from .answer_checks import CHECKERS, get_checker, validate_item
from .evaluator import TestEvaluator

__all__ = ["CHECKERS", "TestEvaluator", "get_checker", "validate_item"]
