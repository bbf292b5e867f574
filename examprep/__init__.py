"""
examprep - adaptive mastery engine for exam preparation.

Schedules spaced-repetition reviews, estimates mastery from review history,
adapts question difficulty, builds performance profiles, scores test attempts
and turns the results into ranked study recommendations.
"""

__version__ = "1.0.0"
