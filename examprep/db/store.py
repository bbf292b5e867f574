"""
Store boundary for the mastery engine.

The engine reads a snapshot, recomputes derived state with pure functions
and writes it back through one of these calls. Every write that depends on
a read carries the version that was read; a store that finds a newer
version raises ``ConcurrencyConflict`` instead of overwriting it. Each
commit is a single all-or-nothing operation.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from loguru import logger

from examprep.core.exceptions import AttemptNotFound, ConcurrencyConflict, ItemNotFound, SetNotFound
from examprep.core.models import (
    Attempt,
    ItemProgress,
    ItemSet,
    LearningItem,
    PracticeRecord,
    ReviewRecord,
    SetProgress,
)

ReviewEntry = tuple[str, ReviewRecord]


class Store(Protocol):
    async def save_item_set(self, item_set: ItemSet) -> None: ...

    async def get_item_set(self, set_id: str) -> ItemSet: ...

    async def find_item(self, item_id: str) -> tuple[ItemSet, LearningItem]: ...

    async def load_set_progress(self, student_id: str, set_id: str) -> SetProgress | None: ...

    async def commit_reviews(
        self,
        progress: SetProgress,
        new_reviews: Sequence[ReviewEntry],
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> SetProgress: ...

    async def create_attempt(self, attempt: Attempt) -> Attempt: ...

    async def get_attempt(self, attempt_id: str) -> Attempt: ...

    async def complete_attempt(
        self,
        attempt: Attempt,
        score: float,
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> Attempt: ...

    async def list_practice_records(self, student_id: str, since: datetime | None = None) -> list[PracticeRecord]: ...

    async def recent_scores(self, student_id: str, limit: int, exclude_attempt_id: str | None = None) -> list[float]: ...


class InMemoryStore:
    """
    Dict-backed store for tests and single-process use.

    A single asyncio lock serialises writes, and every write is staged in
    full before any dict is touched.
    """

    def __init__(self) -> None:
        self._sets: dict[str, ItemSet] = {}
        self._item_index: dict[str, str] = {}
        self._progress: dict[tuple[str, str], SetProgress] = {}
        self._attempts: dict[str, Attempt] = {}
        self._scores: dict[str, list[tuple[datetime, str, float]]] = defaultdict(list)
        self._practice: dict[str, list[PracticeRecord]] = defaultdict(list)
        self._lock = asyncio.Lock()

    # =========================================================================
    # Item sets
    # =========================================================================

    async def save_item_set(self, item_set: ItemSet) -> None:
        async with self._lock:
            previous = self._sets.get(item_set.id)
            if previous is not None:
                for item in previous.items:
                    self._item_index.pop(item.id, None)
            self._sets[item_set.id] = item_set
            for item in item_set.items:
                self._item_index[item.id] = item_set.id

    async def get_item_set(self, set_id: str) -> ItemSet:
        try:
            return self._sets[set_id]
        except KeyError:
            raise SetNotFound(set_id) from None

    async def find_item(self, item_id: str) -> tuple[ItemSet, LearningItem]:
        set_id = self._item_index.get(item_id)
        if set_id is None:
            raise ItemNotFound(item_id)
        item_set = self._sets[set_id]
        return item_set, item_set.get(item_id)

    # =========================================================================
    # Review progress
    # =========================================================================

    async def load_set_progress(self, student_id: str, set_id: str) -> SetProgress | None:
        return self._progress.get((student_id, set_id))

    async def commit_reviews(
        self,
        progress: SetProgress,
        new_reviews: Sequence[ReviewEntry],
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> SetProgress:
        key = (progress.student_id, progress.set_id)
        async with self._lock:
            current = self._progress.get(key)
            actual = current.version if current else 0
            if actual != expected_version:
                raise ConcurrencyConflict(f"set_progress:{key}", expected_version, actual)

            items = dict(current.items) if current else {}
            for item_id, record in new_reviews:
                history = items.get(item_id) or ItemProgress(item_id=item_id)
                items[item_id] = history.with_review(record)

            stored = replace(progress, items=items, version=expected_version + 1)
            self._progress[key] = stored
            self._practice[progress.student_id].extend(practice_records)

        logger.debug(f"Committed {len(new_reviews)} reviews for {key} at version {stored.version}")
        return stored

    # =========================================================================
    # Attempts
    # =========================================================================

    async def create_attempt(self, attempt: Attempt) -> Attempt:
        async with self._lock:
            if attempt.id in self._attempts:
                raise ConcurrencyConflict(f"attempt:{attempt.id}", 0, self._attempts[attempt.id].version)
            stored = replace(attempt, version=1)
            self._attempts[attempt.id] = stored
        return stored

    async def get_attempt(self, attempt_id: str) -> Attempt:
        try:
            return self._attempts[attempt_id]
        except KeyError:
            raise AttemptNotFound(attempt_id) from None

    async def complete_attempt(
        self,
        attempt: Attempt,
        score: float,
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> Attempt:
        async with self._lock:
            current = self._attempts.get(attempt.id)
            if current is None:
                raise AttemptNotFound(attempt.id)
            if current.version != expected_version:
                raise ConcurrencyConflict(f"attempt:{attempt.id}", expected_version, current.version)
            stored = replace(attempt, version=expected_version + 1)
            self._attempts[attempt.id] = stored
            self._scores[attempt.student_id].append((attempt.submitted_at, attempt.id, score))
            self._practice[attempt.student_id].extend(practice_records)
        return stored

    # =========================================================================
    # History
    # =========================================================================

    async def list_practice_records(self, student_id: str, since: datetime | None = None) -> list[PracticeRecord]:
        records = self._practice.get(student_id, [])
        return [r for r in records if since is None or r.recorded_at >= since]

    async def recent_scores(self, student_id: str, limit: int, exclude_attempt_id: str | None = None) -> list[float]:
        scored = sorted(self._scores.get(student_id, []), key=lambda s: s[0], reverse=True)
        return [score for _, attempt_id, score in scored if attempt_id != exclude_attempt_id][:limit]
