"""Exam content data models.

This module defines the canonical question and document shapes that the
recovery stage produces and that validation, storage and callers consume.
Models are frozen: corrections always produce a new instance.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class QuestionType(str, Enum):
    """Assessment item types emitted by the model."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    FILL_IN_THE_BLANK = "fill_in_the_blank"


class Question(BaseModel):
    """A single assessment item.

    Fields may be empty so that the validator can score incomplete items;
    the recovery stage guarantees the multiple-choice invariant for every
    question it emits.

    Attributes:
        id: 1-based ordinal of the question within its document.
        type: Item type.
        question: Prompt text shown to the learner.
        options: Ordered answer options, None for open items.
        correct_answer: Designated correct option (exact string).
        explanation: Worked explanation shown after answering.
        max_points: Optional point value supplied by the model.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(..., ge=1, description="1-based question ordinal")
    type: QuestionType = Field(default=QuestionType.MULTIPLE_CHOICE)
    question: str = Field(default="", description="Question prompt text")
    options: tuple[str, ...] | None = Field(
        default=None, description="Ordered answer options"
    )
    correct_answer: str = Field(default="", description="Designated option")
    explanation: str = Field(default="", description="Answer explanation")
    max_points: int | None = Field(default=None, ge=0)

    @property
    def is_consistent(self) -> bool:
        """Whether options are unique and contain the correct answer."""
        if self.options is None:
            return True
        return self.correct_answer in self.options and len(set(self.options)) == len(
            self.options
        )

    def with_updates(self, **changes: Any) -> "Question":
        """Return a corrected copy, re-validating the changed fields.

        Args:
            **changes: Field values to replace.

        Returns:
            New Question instance.
        """
        return Question.model_validate({**self.model_dump(), **changes})


class RejectedItem(BaseModel):
    """A model-emitted item that could not become a consistent Question.

    Attributes:
        index: 1-based position of the item in the model's list.
        reason: Why the item was rejected.
        snippet: Leading characters of the item as emitted.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    index: int = Field(..., ge=1)
    reason: str = Field(..., min_length=1)
    snippet: str = Field(default="", max_length=200)


class ExamDocument(BaseModel):
    """A recovered, normalized exam.

    Attributes:
        questions: Normalized questions, all satisfying the MC invariant.
        topic: Topic reported by the model, if any.
        grade: Grade reported by the model, if any.
        variant: Shape of the raw payload before normalization.
        strategy: Name of the recovery strategy that parsed the payload.
        rejected: Items dropped during normalization.
        degraded: True for the fallback placeholder document.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    questions: tuple[Question, ...] = Field(default_factory=tuple)
    topic: str | None = None
    grade: int | None = None
    variant: Literal["canonical", "legacy_short_keys", "fallback"] = "canonical"
    strategy: str | None = None
    rejected: tuple[RejectedItem, ...] = Field(default_factory=tuple)
    degraded: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Render the document in the canonical model-output shape.

        Returns:
            Dictionary with a ``questions`` list and optional topic/grade.
        """
        payload: dict[str, Any] = {
            "questions": [
                {
                    key: value
                    for key, value in q.model_dump(mode="json").items()
                    if value is not None
                }
                for q in self.questions
            ]
        }
        if self.topic is not None:
            payload["topic"] = self.topic
        if self.grade is not None:
            payload["grade"] = self.grade
        return payload
