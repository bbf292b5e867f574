"""
Adaptive Module - difficulty adaptation, progress profiles and recommendations.
"""

from .difficulty import DifficultyAdapter
from .progress_analyzer import ProgressAnalyzer
from .recommendations import RecommendationEngine, assess_level

__all__ = [
    "DifficultyAdapter",
    "ProgressAnalyzer",
    "RecommendationEngine",
    "assess_level",
]
