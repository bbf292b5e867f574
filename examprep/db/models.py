"""
SQL tables for the mastery engine.

- item_sets / learning_items: question banks and flashcard decks
- set_progress: per-student progress header with an optimistic-lock version
- review_records: append-only review history (never updated or deleted)
- attempts / attempt_answers: test sittings and their answers
- practice_records: topic-level outcomes feeding progress analysis
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class ItemSetRow(Base):
    __tablename__ = "item_sets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(64))

    items: Mapped[list[LearningItemRow]] = relationship(
        back_populates="item_set",
        order_by="LearningItemRow.position",
        cascade="all, delete-orphan",
    )


class LearningItemRow(Base):
    __tablename__ = "learning_items"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    set_id: Mapped[str] = mapped_column(ForeignKey("item_sets.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    topic: Mapped[str] = mapped_column(Text, nullable=False)
    subtopic: Mapped[str | None] = mapped_column(Text)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False)
    question_type: Mapped[str] = mapped_column(String(16), nullable=False)
    cognitive_level: Mapped[str] = mapped_column(String(16), nullable=False)

    # Answer key shape depends on question_type
    answer_key: Mapped[Any] = mapped_column(JSON)
    marks: Mapped[float] = mapped_column(Float, default=1.0)
    negative_marks: Mapped[float] = mapped_column(Float, default=0.0)
    allotted_seconds: Mapped[int | None] = mapped_column(Integer)

    prompt: Mapped[str] = mapped_column(Text, default="")
    options: Mapped[list[str]] = mapped_column(JSON, default=list)
    explanation: Mapped[str] = mapped_column(Text, default="")
    is_fallback: Mapped[bool] = mapped_column(Boolean, default=False)

    item_set: Mapped[ItemSetRow] = relationship(back_populates="items")

    __table_args__ = (Index("ix_learning_items_set_position", "set_id", "position"),)


class SetProgressRow(Base):
    __tablename__ = "set_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    set_id: Mapped[str] = mapped_column(ForeignKey("item_sets.id", ondelete="CASCADE"), nullable=False)

    # Derived from review_records; rewritten on every commit
    overall_mastery: Mapped[float] = mapped_column(Float, default=0.0)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("student_id", "set_id", name="uq_set_progress_student_set"),)


class ReviewRecordRow(Base):
    __tablename__ = "review_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    set_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)

    interval_days: Mapped[int] = mapped_column(Integer, nullable=False)
    next_review_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    performance: Mapped[float] = mapped_column(Float, nullable=False)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time_spent_seconds: Mapped[float] = mapped_column(Float, default=0.0)

    __table_args__ = (Index("ix_review_records_student_set", "student_id", "set_id", "id"),)


class AttemptRow(Base):
    __tablename__ = "attempts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    item_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    total_time_spent: Mapped[float] = mapped_column(Float, default=0.0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Filled in once evaluated
    score: Mapped[float | None] = mapped_column(Float)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    answers: Mapped[list[AttemptAnswerRow]] = relationship(
        back_populates="attempt",
        order_by="AttemptAnswerRow.position",
        cascade="all, delete-orphan",
    )


class AttemptAnswerRow(Base):
    __tablename__ = "attempt_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attempt_id: Mapped[str] = mapped_column(ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    question_id: Mapped[str] = mapped_column(String(128), nullable=False)
    given_answer: Mapped[Any] = mapped_column(JSON)
    time_spent_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    is_correct: Mapped[bool | None] = mapped_column(Boolean)

    attempt: Mapped[AttemptRow] = relationship(back_populates="answers")


class PracticeRecordRow(Base):
    __tablename__ = "practice_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    correct: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time_spent_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    # {subtopic: [correct, total]}
    subtopics: Mapped[dict[str, list[float]]] = mapped_column(JSON, default=dict)
    difficulty: Mapped[str | None] = mapped_column(String(16))
    source: Mapped[str] = mapped_column(String(16), default="attempt")

    __table_args__ = (Index("ix_practice_records_student_time", "student_id", "recorded_at"),)
