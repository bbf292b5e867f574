"""
Content Generator collaborators.

Question content comes from an external model endpoint that may be slow,
down, or return garbage. ``HttpContentGenerator`` asks the endpoint for a
batch of questions and, whenever the call or its payload fails, hands back
the deterministic output of ``FallbackContentGenerator`` instead of raising.

Usage:
    async with HttpContentGenerator(settings) as generator:
        items = await generator.generate("Kinematics", Difficulty.MEDIUM, 5, QuestionType.SINGLE_CHOICE)
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from examprep.assessment.answer_checks import validate_item
from examprep.config import Settings, get_settings
from examprep.core.exceptions import InvalidRequest
from examprep.core.models import CognitiveLevel, Difficulty, LearningItem, QuestionType

FALLBACK_NAMESPACE = uuid.UUID("6f1c2d3e-4b5a-4c7d-8e9f-a0b1c2d3e4f5")
FALLBACK_OPTIONS = ("A", "B", "C", "D")


class ContentGenerator(Protocol):
    async def generate(
        self,
        topic: str,
        difficulty: Difficulty,
        count: int,
        question_type: QuestionType,
        subject: str = "General",
    ) -> list[LearningItem]: ...


def _check_count(count: int) -> None:
    if count <= 0:
        raise InvalidRequest(f"count must be positive, got {count}")


# =============================================================================
# Fallback content
# =============================================================================


class FallbackContentGenerator:
    """
    Deterministic placeholder questions.

    The same (subject, topic, difficulty, type, index) always yields the same
    item id and answer key, so fallback sets are reproducible.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    async def generate(
        self,
        topic: str,
        difficulty: Difficulty,
        count: int,
        question_type: QuestionType,
        subject: str = "General",
    ) -> list[LearningItem]:
        return self.build(topic, difficulty, count, question_type, subject)

    def build(
        self,
        topic: str,
        difficulty: Difficulty,
        count: int,
        question_type: QuestionType,
        subject: str = "General",
        start: int = 1,
    ) -> list[LearningItem]:
        _check_count(count)
        difficulty = Difficulty(difficulty)
        question_type = QuestionType(question_type)
        return [
            self._item(topic, difficulty, question_type, subject, index)
            for index in range(start, start + count)
        ]

    def _item(
        self,
        topic: str,
        difficulty: Difficulty,
        question_type: QuestionType,
        subject: str,
        index: int,
    ) -> LearningItem:
        seed = f"{subject}:{topic}:{difficulty.value}:{question_type.value}:{index}"
        item_id = str(uuid.uuid5(FALLBACK_NAMESPACE, seed))

        options: tuple[str, ...] = ()
        answer_key: Any
        if question_type == QuestionType.SINGLE_CHOICE:
            prompt = f"{subject} {topic} Question {index}"
            options = FALLBACK_OPTIONS
            answer_key = "A"
        elif question_type == QuestionType.MULTI_CHOICE:
            prompt = f"{subject} {topic} Question {index} (select all that apply)"
            options = FALLBACK_OPTIONS
            answer_key = ["A", "B"]
        elif question_type == QuestionType.NUMERIC:
            prompt = f"{subject} {topic} Question {index}: what is {index} x 10?"
            answer_key = float(index * 10)
        else:
            prompt = f"Explain {topic} Concept {index}"
            answer_key = f"Key points of {topic} Concept {index}"

        return LearningItem(
            id=item_id,
            topic=topic,
            subject=subject,
            question_type=question_type,
            answer_key=answer_key,
            difficulty=difficulty,
            subtopic="fundamentals",
            allotted_seconds=self.settings.default_allotted_seconds,
            cognitive_level=CognitiveLevel.UNDERSTAND,
            prompt=prompt,
            options=options,
            explanation=f"Review the fundamentals of {topic}.",
            is_fallback=True,
        )


# =============================================================================
# HTTP content
# =============================================================================


class GeneratedQuestion(BaseModel):
    """One question as returned by the model endpoint."""

    prompt: str = Field(min_length=1)
    answer: Any = None
    options: list[str] = Field(default_factory=list)
    subtopic: str | None = None
    explanation: str = ""
    cognitive_level: CognitiveLevel = CognitiveLevel.UNDERSTAND
    marks: float = Field(default=1.0, ge=0)
    negative_marks: float = Field(default=0.0, ge=0)
    time_limit: int | None = Field(default=None, gt=0)


class GeneratedBatch(BaseModel):
    questions: list[GeneratedQuestion]


class HttpContentGenerator:
    """
    Chat-completions client that produces LearningItems.

    Supports:
    - API key bearer authentication
    - Injectable transport (tests use ``httpx.MockTransport``)
    - Fallback to deterministic content on any failure
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        fallback: FallbackContentGenerator | None = None,
    ):
        self.settings = settings or get_settings()
        self.fallback = fallback or FallbackContentGenerator(self.settings)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HttpContentGenerator":
        self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.settings.content_api_key:
                headers["Authorization"] = f"Bearer {self.settings.content_api_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.settings.content_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        topic: str,
        difficulty: Difficulty,
        count: int,
        question_type: QuestionType,
        subject: str = "General",
    ) -> list[LearningItem]:
        """
        Generate ``count`` questions, falling back to placeholder content.

        Args:
            topic: Topic the questions cover
            difficulty: Target difficulty
            count: Number of questions wanted
            question_type: Answer shape of every question
            subject: Subject the topic belongs to

        Returns:
            Exactly ``count`` items; short batches are topped up with fallback items
        """
        _check_count(count)
        difficulty = Difficulty(difficulty)
        question_type = QuestionType(question_type)

        if not self.settings.content_api_url:
            logger.debug("No content endpoint configured, using fallback content")
            return self.fallback.build(topic, difficulty, count, question_type, subject)

        try:
            batch = await self._request(topic, difficulty, count, question_type, subject)
            items = [
                self._to_item(q, topic, difficulty, question_type, subject)
                for q in batch.questions[:count]
            ]
        except (httpx.HTTPError, ValidationError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Content generation failed for {topic!r}, using fallback: {e}")
            return self.fallback.build(topic, difficulty, count, question_type, subject)

        if len(items) < count:
            logger.warning(f"Content endpoint returned {len(items)}/{count} questions for {topic!r}")
            items.extend(
                self.fallback.build(topic, difficulty, count - len(items), question_type, subject, start=len(items) + 1)
            )
        logger.info(f"Generated {len(items)} {question_type.value} questions for {topic}")
        return items

    async def _request(
        self,
        topic: str,
        difficulty: Difficulty,
        count: int,
        question_type: QuestionType,
        subject: str,
    ) -> GeneratedBatch:
        client = self._ensure_client()
        response = await client.post(
            self.settings.content_api_url,
            json={
                "model": self.settings.content_model,
                "messages": [
                    {
                        "role": "system",
                        "content": "You write exam questions. Reply with JSON only: "
                        '{"questions": [{"prompt", "options", "answer", "subtopic", '
                        '"explanation", "cognitive_level", "time_limit"}]}',
                    },
                    {
                        "role": "user",
                        "content": f"Write {count} {difficulty.value} {question_type.value} "
                        f"questions on {topic} ({subject}).",
                    },
                ],
                "response_format": {"type": "json_object"},
            },
        )
        response.raise_for_status()
        content = response.json()["choices"][0]["message"]["content"]
        return GeneratedBatch.model_validate_json(content)

    def _to_item(
        self,
        question: GeneratedQuestion,
        topic: str,
        difficulty: Difficulty,
        question_type: QuestionType,
        subject: str,
    ) -> LearningItem:
        item = LearningItem(
            id=str(uuid.uuid4()),
            topic=topic,
            subject=subject,
            question_type=question_type,
            answer_key=question.answer,
            difficulty=difficulty,
            subtopic=question.subtopic,
            marks=question.marks,
            negative_marks=question.negative_marks,
            allotted_seconds=question.time_limit or self.settings.default_allotted_seconds,
            cognitive_level=question.cognitive_level,
            prompt=question.prompt,
            options=tuple(question.options),
            explanation=question.explanation,
        )
        return validate_item(item)
