"""
Weak/strong area classification shared by progress analysis and test evaluation.

Thresholds are boundary-exact: an area is weak when its accuracy is strictly
below the weak threshold and strong when it is at or above the strong threshold.
"""

from __future__ import annotations

from collections.abc import Mapping

from .models import AreaScore


def weak_areas(accuracies: Mapping[str, float], threshold: float, limit: int | None) -> tuple[AreaScore, ...]:
    """Areas below ``threshold``, weakest first (ties by name)."""
    weak = sorted(
        (AreaScore(name, acc) for name, acc in accuracies.items() if acc < threshold),
        key=lambda a: (a.accuracy, a.name),
    )
    return tuple(weak if limit is None else weak[:limit])


def strong_areas(accuracies: Mapping[str, float], threshold: float, limit: int | None) -> tuple[AreaScore, ...]:
    """Areas at or above ``threshold``, strongest first (ties by name)."""
    strong = sorted(
        (AreaScore(name, acc) for name, acc in accuracies.items() if acc >= threshold),
        key=lambda a: (-a.accuracy, a.name),
    )
    return tuple(strong if limit is None else strong[:limit])
