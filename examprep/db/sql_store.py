"""
SQLAlchemy-backed store.

Uses the synchronous engine from ``Database`` and runs each operation in a
worker thread (``asyncio.to_thread``) so the engine's async boundary stays
non-blocking. Version checks are done with a conditional UPDATE inside the
same transaction that appends review rows, so a stale writer changes
nothing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from examprep.core.exceptions import AttemptNotFound, ConcurrencyConflict, ItemNotFound, SetNotFound, StoreError
from examprep.core.models import (
    AnswerRecord,
    Attempt,
    AttemptStatus,
    Difficulty,
    ItemProgress,
    ItemSet,
    LearningItem,
    PracticeRecord,
    ReviewRecord,
    SetProgress,
)
from examprep.db.database import Database
from examprep.db.models import (
    AttemptAnswerRow,
    AttemptRow,
    ItemSetRow,
    LearningItemRow,
    PracticeRecordRow,
    ReviewRecordRow,
    SetProgressRow,
)
from examprep.db.store import ReviewEntry


def _utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Row <-> value conversion
# =============================================================================


def _item_from_row(row: LearningItemRow) -> LearningItem:
    return LearningItem(
        id=row.id,
        topic=row.topic,
        subject=row.subject,
        question_type=row.question_type,
        answer_key=row.answer_key,
        difficulty=row.difficulty,
        subtopic=row.subtopic,
        marks=row.marks,
        negative_marks=row.negative_marks,
        allotted_seconds=row.allotted_seconds,
        cognitive_level=row.cognitive_level,
        prompt=row.prompt or "",
        options=tuple(row.options or ()),
        explanation=row.explanation or "",
        is_fallback=row.is_fallback,
    )


def _item_to_row(item: LearningItem, set_id: str, position: int) -> LearningItemRow:
    return LearningItemRow(
        id=item.id,
        set_id=set_id,
        position=position,
        topic=item.topic,
        subtopic=item.subtopic,
        subject=item.subject,
        difficulty=item.difficulty.value,
        question_type=item.question_type.value,
        cognitive_level=item.cognitive_level.value,
        answer_key=item.answer_key,
        marks=item.marks,
        negative_marks=item.negative_marks,
        allotted_seconds=item.allotted_seconds,
        prompt=item.prompt,
        options=list(item.options),
        explanation=item.explanation,
        is_fallback=item.is_fallback,
    )


def _set_from_row(row: ItemSetRow) -> ItemSet:
    return ItemSet(
        id=row.id,
        name=row.name,
        owner_id=row.owner_id,
        items=tuple(_item_from_row(r) for r in row.items),
    )


def _review_from_row(row: ReviewRecordRow) -> ReviewRecord:
    return ReviewRecord(
        interval_days=row.interval_days,
        next_review_at=_utc(row.next_review_at),
        performance=row.performance,
        reviewed_at=_utc(row.reviewed_at),
        time_spent_seconds=row.time_spent_seconds,
    )


def _practice_from_row(row: PracticeRecordRow) -> PracticeRecord:
    return PracticeRecord(
        student_id=row.student_id,
        topic=row.topic,
        subject=row.subject,
        total_questions=row.total_questions,
        correct=row.correct,
        recorded_at=_utc(row.recorded_at),
        time_spent_seconds=row.time_spent_seconds,
        subtopics={name: (pair[0], int(pair[1])) for name, pair in (row.subtopics or {}).items()},
        difficulty=Difficulty(row.difficulty) if row.difficulty else None,
        source=row.source,
    )


def _practice_to_row(record: PracticeRecord) -> PracticeRecordRow:
    return PracticeRecordRow(
        student_id=record.student_id,
        topic=record.topic,
        subject=record.subject,
        total_questions=record.total_questions,
        correct=record.correct,
        recorded_at=record.recorded_at,
        time_spent_seconds=record.time_spent_seconds,
        subtopics={name: [c, t] for name, (c, t) in record.subtopics.items()},
        difficulty=record.difficulty.value if record.difficulty else None,
        source=record.source,
    )


def _attempt_from_row(row: AttemptRow) -> Attempt:
    return Attempt(
        id=row.id,
        student_id=row.student_id,
        item_ids=tuple(row.item_ids),
        status=AttemptStatus(row.status),
        answers=tuple(
            AnswerRecord(
                question_id=a.question_id,
                given_answer=a.given_answer,
                time_spent_seconds=a.time_spent_seconds,
                is_correct=a.is_correct,
            )
            for a in row.answers
        ),
        total_time_spent=row.total_time_spent,
        started_at=_utc(row.started_at),
        submitted_at=_utc(row.submitted_at),
        name=row.name,
        version=row.version,
    )


class SqlStore:
    """Store implementation over a SQL database."""

    def __init__(self, database: Database):
        self.db = database

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error(f"Store operation {fn.__name__} failed: {e}")
            raise StoreError(str(e)) from e

    # =========================================================================
    # Item sets
    # =========================================================================

    async def save_item_set(self, item_set: ItemSet) -> None:
        await self._run(self._save_item_set, item_set)

    def _save_item_set(self, item_set: ItemSet) -> None:
        with self.db.session_scope() as session:
            row = session.get(ItemSetRow, item_set.id)
            if row is None:
                row = ItemSetRow(id=item_set.id)
                session.add(row)
            else:
                # Replace items without dropping the set (progress rows reference it)
                row.items.clear()
                session.flush()
            row.name = item_set.name
            row.owner_id = item_set.owner_id
            row.items = [_item_to_row(item, item_set.id, i) for i, item in enumerate(item_set.items)]
        logger.info(f"Saved item set {item_set.id} with {len(item_set.items)} items")

    async def get_item_set(self, set_id: str) -> ItemSet:
        return await self._run(self._get_item_set, set_id)

    def _get_item_set(self, set_id: str) -> ItemSet:
        with self.db.session_scope() as session:
            row = session.scalar(
                select(ItemSetRow).options(selectinload(ItemSetRow.items)).where(ItemSetRow.id == set_id)
            )
            if row is None:
                raise SetNotFound(set_id)
            return _set_from_row(row)

    async def find_item(self, item_id: str) -> tuple[ItemSet, LearningItem]:
        return await self._run(self._find_item, item_id)

    def _find_item(self, item_id: str) -> tuple[ItemSet, LearningItem]:
        with self.db.session_scope() as session:
            set_id = session.scalar(select(LearningItemRow.set_id).where(LearningItemRow.id == item_id))
        if set_id is None:
            raise ItemNotFound(item_id)
        item_set = self._get_item_set(set_id)
        return item_set, item_set.get(item_id)

    # =========================================================================
    # Review progress
    # =========================================================================

    async def load_set_progress(self, student_id: str, set_id: str) -> SetProgress | None:
        return await self._run(self._load_set_progress, student_id, set_id)

    def _load_set_progress(self, student_id: str, set_id: str) -> SetProgress | None:
        with self.db.session_scope() as session:
            header = session.scalar(
                select(SetProgressRow).where(
                    SetProgressRow.student_id == student_id, SetProgressRow.set_id == set_id
                )
            )
            if header is None:
                return None
            rows = session.scalars(
                select(ReviewRecordRow)
                .where(ReviewRecordRow.student_id == student_id, ReviewRecordRow.set_id == set_id)
                .order_by(ReviewRecordRow.id)
            ).all()

            histories: dict[str, list[ReviewRecord]] = {}
            for row in rows:
                histories.setdefault(row.item_id, []).append(_review_from_row(row))

            return SetProgress(
                student_id=student_id,
                set_id=set_id,
                items={k: ItemProgress(item_id=k, reviews=tuple(v)) for k, v in histories.items()},
                overall_mastery=header.overall_mastery,
                total_reviews=header.total_reviews,
                last_reviewed_at=_utc(header.last_reviewed_at),
                version=header.version,
            )

    async def commit_reviews(
        self,
        progress: SetProgress,
        new_reviews: Sequence[ReviewEntry],
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> SetProgress:
        await self._run(self._commit_reviews, progress, new_reviews, practice_records, expected_version)
        stored = await self.load_set_progress(progress.student_id, progress.set_id)
        logger.debug(
            f"Committed {len(new_reviews)} reviews for {progress.student_id}/{progress.set_id} "
            f"at version {stored.version}"
        )
        return stored

    def _commit_reviews(
        self,
        progress: SetProgress,
        new_reviews: Sequence[ReviewEntry],
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> None:
        key = f"set_progress:{progress.student_id}/{progress.set_id}"
        with self.db.session_scope() as session:
            if expected_version == 0:
                exists = session.scalar(
                    select(SetProgressRow.version).where(
                        SetProgressRow.student_id == progress.student_id,
                        SetProgressRow.set_id == progress.set_id,
                    )
                )
                if exists is not None:
                    raise ConcurrencyConflict(key, expected_version, exists)
                session.add(
                    SetProgressRow(
                        student_id=progress.student_id,
                        set_id=progress.set_id,
                        overall_mastery=progress.overall_mastery,
                        total_reviews=progress.total_reviews,
                        last_reviewed_at=progress.last_reviewed_at,
                        version=1,
                    )
                )
            else:
                result = session.execute(
                    update(SetProgressRow)
                    .where(
                        SetProgressRow.student_id == progress.student_id,
                        SetProgressRow.set_id == progress.set_id,
                        SetProgressRow.version == expected_version,
                    )
                    .values(
                        overall_mastery=progress.overall_mastery,
                        total_reviews=progress.total_reviews,
                        last_reviewed_at=progress.last_reviewed_at,
                        version=expected_version + 1,
                    )
                )
                if result.rowcount == 0:
                    actual = session.scalar(
                        select(SetProgressRow.version).where(
                            SetProgressRow.student_id == progress.student_id,
                            SetProgressRow.set_id == progress.set_id,
                        )
                    )
                    raise ConcurrencyConflict(key, expected_version, actual)

            session.add_all(
                ReviewRecordRow(
                    student_id=progress.student_id,
                    set_id=progress.set_id,
                    item_id=item_id,
                    interval_days=record.interval_days,
                    next_review_at=record.next_review_at,
                    performance=record.performance,
                    reviewed_at=record.reviewed_at,
                    time_spent_seconds=record.time_spent_seconds,
                )
                for item_id, record in new_reviews
            )
            session.add_all(_practice_to_row(r) for r in practice_records)

    # =========================================================================
    # Attempts
    # =========================================================================

    async def create_attempt(self, attempt: Attempt) -> Attempt:
        await self._run(self._create_attempt, attempt)
        return await self.get_attempt(attempt.id)

    def _create_attempt(self, attempt: Attempt) -> None:
        with self.db.session_scope() as session:
            existing = session.get(AttemptRow, attempt.id)
            if existing is not None:
                raise ConcurrencyConflict(f"attempt:{attempt.id}", 0, existing.version)
            session.add(
                AttemptRow(
                    id=attempt.id,
                    student_id=attempt.student_id,
                    name=attempt.name,
                    status=attempt.status.value,
                    item_ids=list(attempt.item_ids),
                    total_time_spent=attempt.total_time_spent,
                    started_at=attempt.started_at,
                    submitted_at=attempt.submitted_at,
                    version=1,
                )
            )

    async def get_attempt(self, attempt_id: str) -> Attempt:
        return await self._run(self._get_attempt, attempt_id)

    def _get_attempt(self, attempt_id: str) -> Attempt:
        with self.db.session_scope() as session:
            row = session.scalar(
                select(AttemptRow).options(selectinload(AttemptRow.answers)).where(AttemptRow.id == attempt_id)
            )
            if row is None:
                raise AttemptNotFound(attempt_id)
            return _attempt_from_row(row)

    async def complete_attempt(
        self,
        attempt: Attempt,
        score: float,
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> Attempt:
        await self._run(self._complete_attempt, attempt, score, practice_records, expected_version)
        return await self.get_attempt(attempt.id)

    def _complete_attempt(
        self,
        attempt: Attempt,
        score: float,
        practice_records: Sequence[PracticeRecord],
        expected_version: int,
    ) -> None:
        with self.db.session_scope() as session:
            result = session.execute(
                update(AttemptRow)
                .where(AttemptRow.id == attempt.id, AttemptRow.version == expected_version)
                .values(
                    status=attempt.status.value,
                    total_time_spent=attempt.total_time_spent,
                    submitted_at=attempt.submitted_at,
                    score=score,
                    version=expected_version + 1,
                )
            )
            if result.rowcount == 0:
                actual = session.scalar(select(AttemptRow.version).where(AttemptRow.id == attempt.id))
                if actual is None:
                    raise AttemptNotFound(attempt.id)
                raise ConcurrencyConflict(f"attempt:{attempt.id}", expected_version, actual)

            session.add_all(
                AttemptAnswerRow(
                    attempt_id=attempt.id,
                    position=i,
                    question_id=a.question_id,
                    given_answer=a.given_answer,
                    time_spent_seconds=a.time_spent_seconds,
                    is_correct=a.is_correct,
                )
                for i, a in enumerate(attempt.answers)
            )
            session.add_all(_practice_to_row(r) for r in practice_records)

    # =========================================================================
    # History
    # =========================================================================

    async def list_practice_records(self, student_id: str, since: datetime | None = None) -> list[PracticeRecord]:
        return await self._run(self._list_practice_records, student_id, since)

    def _list_practice_records(self, student_id: str, since: datetime | None) -> list[PracticeRecord]:
        with self.db.session_scope() as session:
            query = select(PracticeRecordRow).where(PracticeRecordRow.student_id == student_id)
            if since is not None:
                query = query.where(PracticeRecordRow.recorded_at >= since)
            rows = session.scalars(query.order_by(PracticeRecordRow.recorded_at, PracticeRecordRow.id)).all()
            return [_practice_from_row(r) for r in rows]

    async def recent_scores(self, student_id: str, limit: int, exclude_attempt_id: str | None = None) -> list[float]:
        return await self._run(self._recent_scores, student_id, limit, exclude_attempt_id)

    def _recent_scores(self, student_id: str, limit: int, exclude_attempt_id: str | None) -> list[float]:
        with self.db.session_scope() as session:
            query = select(AttemptRow.score).where(
                AttemptRow.student_id == student_id,
                AttemptRow.score.is_not(None),
            )
            if exclude_attempt_id is not None:
                query = query.where(AttemptRow.id != exclude_attempt_id)
            return list(session.scalars(query.order_by(AttemptRow.submitted_at.desc()).limit(limit)).all())
