"""Persistence collaborator interface and storage record shape.

The generation core only needs "accepts the questions and usage, returns an
opaque id". The record shape mirrors the question table of the surrounding
application: one row per question with its text, answer, type, options,
explanation and point value.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from examforge.schemas.exam import ExamDocument, Question, QuestionType
from examforge.schemas.generation import UsageRecord, ValidationResult

DEFAULT_MAX_POINTS: dict[QuestionType, int] = {
    QuestionType.MULTIPLE_CHOICE: 2,
    QuestionType.TRUE_FALSE: 1,
    QuestionType.SHORT_ANSWER: 3,
    QuestionType.FILL_IN_THE_BLANK: 2,
}


class StoredQuestion(BaseModel):
    """One question row.

    Attributes:
        id: Question key within the exam (``q<ordinal>``).
        question_text: Prompt shown to the learner.
        answer_text: Designated correct answer.
        question_type: Item type value.
        options: Answer options, None for open items.
        explanation: Worked explanation.
        max_points: Point value.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    id: str
    question_text: str
    answer_text: str
    question_type: str
    options: list[str] | None = None
    explanation: str
    max_points: int = Field(..., ge=0)


class StoredExam(BaseModel):
    """Storage shape of a generated exam.

    Attributes:
        topic: Exam topic, if reported.
        grade: Exam grade, if reported.
        degraded: True for fallback placeholder exams.
        variant: Shape of the raw model document.
        questions: Question rows.
        usage: Cumulative generation usage.
        validation_score: Score of the stored question set, None for
            unvalidated fallback exams.
        created_at: UTC timestamp in ISO 8601.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    topic: str | None = None
    grade: int | None = None
    degraded: bool = False
    variant: str
    questions: list[StoredQuestion]
    usage: UsageRecord
    validation_score: int | None = None
    created_at: str


def to_stored_question(question: Question) -> StoredQuestion:
    """Convert a Question into its storage row."""
    return StoredQuestion(
        id=f"q{question.id}",
        question_text=question.question,
        answer_text=question.correct_answer,
        question_type=question.type.value,
        options=list(question.options) if question.options is not None else None,
        explanation=question.explanation,
        max_points=(
            question.max_points
            if question.max_points is not None
            else DEFAULT_MAX_POINTS[question.type]
        ),
    )


def to_storage_record(
    document: ExamDocument,
    usage: UsageRecord,
    validation: ValidationResult | None = None,
) -> StoredExam:
    """Build the storage shape of an exam.

    Args:
        document: Generated (or fallback) document.
        usage: Cumulative usage of the generation call.
        validation: Validation result, None for fallback documents.

    Returns:
        Storage record.
    """
    return StoredExam(
        topic=document.topic,
        grade=document.grade,
        degraded=document.degraded,
        variant=document.variant,
        questions=[to_stored_question(q) for q in document.questions],
        usage=usage,
        validation_score=validation.score if validation is not None else None,
        created_at=datetime.now(timezone.utc).isoformat(),
    )


class ExamRepository(ABC):
    """Abstract persistence collaborator for generated exams."""

    @abstractmethod
    async def save(
        self,
        document: ExamDocument,
        usage: UsageRecord,
        validation: ValidationResult | None = None,
    ) -> str:
        """Store an exam.

        Args:
            document: Generated (or fallback) document.
            usage: Cumulative usage of the generation call.
            validation: Validation result, None for fallback documents.

        Returns:
            Opaque durable identifier.

        Raises:
            StorageError: If the exam cannot be stored.
        """
        pass

    @abstractmethod
    async def get(self, exam_id: str) -> dict[str, Any]:
        """Load a stored exam record.

        Args:
            exam_id: Identifier returned by ``save``.

        Returns:
            Stored record as a JSON-compatible dictionary.

        Raises:
            StorageError: If no exam has this identifier.
        """
        pass
