"""Generation data models.

This module defines the request, per-attempt, usage and outcome structures
exchanged between the orchestrator, its collaborators and its caller.
"""

import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from examforge.exceptions import (
    DegenerateOutputError,
    GenerationCancelledError,
    GenerationError,
    SchemaViolationError,
    TransportError,
    UnparseableOutputError,
    ValidationFailedError,
)
from examforge.schemas.exam import ExamDocument, Question

FailurePhase = Literal[
    "transport", "degeneracy", "parse", "schema", "validation", "cancelled"
]

AttemptOutcome = Literal["transport_error", "degenerate", "unparseable", "parsed"]


class Attachment(BaseModel):
    """One opaque content payload sent along with the prompt.

    Attributes:
        mime_type: MIME type of the payload (image/png, text/plain, ...).
        data: Binary payload such as an image.
        text: Textual payload such as OCR output.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    mime_type: str = Field(..., min_length=3)
    data: bytes | None = None
    text: str | None = None

    @model_validator(mode="after")
    def exactly_one_payload(self) -> "Attachment":
        """Validate that exactly one of data and text is set.

        Returns:
            Validated Attachment instance.

        Raises:
            ValueError: If both or neither payload is provided.
        """
        if (self.data is None) == (self.text is None):
            raise ValueError("exactly one of 'data' or 'text' must be provided")
        return self

    @property
    def is_image(self) -> bool:
        """Whether the attachment is binary image content."""
        return self.data is not None and self.mime_type.startswith("image/")


class GenerationRequest(BaseModel):
    """Immutable input of one generation call.

    Attributes:
        attachments: Source material (images or extracted text).
        grade: Target grade indicator.
        language: Target natural language (ISO 639-1).
        correlation_id: Identifier used to correlate log lines.
        question_count: Optional override of the requested question count.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    attachments: tuple[Attachment, ...] = Field(..., min_length=1)
    grade: int = Field(..., ge=1, le=12)
    language: str = Field(default="fi", min_length=2, max_length=8)
    correlation_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    question_count: int | None = Field(default=None, ge=1, le=50)

    @property
    def source_text(self) -> str:
        """Concatenated text attachments, used for fallback documents."""
        return "\n\n".join(a.text for a in self.attachments if a.text is not None)


class TokenUsage(BaseModel):
    """Token usage statistics reported by the transport.

    Attributes:
        prompt_tokens: Number of tokens in the input prompt.
        completion_tokens: Number of tokens in the generated completion.
        total_tokens: Total tokens used (prompt + completion).
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    prompt_tokens: int = Field(..., ge=0, description="Number of tokens in the prompt")
    completion_tokens: int = Field(..., ge=0, description="Number of generated tokens")
    total_tokens: int = Field(
        ..., ge=0, description="Total tokens (prompt + completion)"
    )


class TransportResponse(BaseModel):
    """Result of one external generation call.

    Attributes:
        text: Raw generated text.
        usage: Token counters, None when the provider did not report them.
        finish_reason: Reason generation stopped, when known.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    text: str = Field(..., description="Generated text completion")
    usage: TokenUsage | None = Field(default=None, description="Token usage")
    finish_reason: Literal["stop", "length", "error"] | None = Field(default=None)


class GenerationAttempt(BaseModel):
    """One trial of the escalation loop.

    Attributes:
        index: 1-based attempt number.
        temperature: Escalation parameter used.
        text: Raw output text; only the winning attempt keeps the full text,
            the others keep their first 200 characters (empty when the
            transport failed).
        duration_ms: Wall-clock duration of the transport call.
        usage: Counters reported for this attempt, if any.
        outcome: How the attempt ended.
        error: Diagnostic message for unsuccessful attempts.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    index: int = Field(..., ge=1)
    temperature: float = Field(..., ge=0.0, le=2.0)
    text: str = Field(default="")
    duration_ms: float = Field(..., ge=0.0)
    usage: TokenUsage | None = None
    outcome: AttemptOutcome
    error: str | None = None


class UsageRecord(BaseModel):
    """Normalized, priced usage of one or more attempts.

    Attributes:
        prompt_tokens: Prompt tokens across folded attempts.
        completion_tokens: Completion tokens across folded attempts.
        total_tokens: Total tokens across folded attempts.
        input_cost: USD spent on prompt tokens.
        output_cost: USD spent on completion tokens.
        total_cost: USD total.
        attempts: Number of attempts folded into this record.
        estimated: True if any folded count was estimated from text length.
        model: Model the prices were taken for.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    input_cost: float = Field(default=0.0, ge=0.0)
    output_cost: float = Field(default=0.0, ge=0.0)
    total_cost: float = Field(default=0.0, ge=0.0)
    attempts: int = Field(default=0, ge=0)
    estimated: bool = False
    model: str = Field(default="")


class ValidationResult(BaseModel):
    """Outcome of the content validation gate.

    Attributes:
        score: Composite score clamped to [0, 100].
        passed: Whether score reached the pass threshold.
        errors: Blocking findings, prefixed with the question ordinal.
        warnings: Non-blocking findings, prefixed with the question ordinal.
        breakdown: Raw component values (structural, quality, domain).
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    score: int = Field(..., ge=0, le=100)
    passed: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    breakdown: dict[str, int] = Field(default_factory=dict)


class GenerationSuccess(BaseModel):
    """Successful generation outcome.

    Attributes:
        status: Discriminator.
        document: Validated exam document.
        temperature: Escalation parameter of the winning attempt.
        validation: Validation result of the winning attempt.
        usage: Cumulative usage across every attempt.
        attempts: All attempts made, in order.
        states: Trace of orchestrator states.
        correlation_id: Request identifier.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["success"] = "success"
    document: ExamDocument
    temperature: float
    validation: ValidationResult
    usage: UsageRecord
    attempts: list[GenerationAttempt] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    correlation_id: str

    @property
    def questions(self) -> tuple[Question, ...]:
        """Questions of the winning document."""
        return self.document.questions


_FAILURE_EXCEPTIONS: dict[str, type[GenerationError]] = {
    "transport": TransportError,
    "degeneracy": DegenerateOutputError,
    "parse": UnparseableOutputError,
    "schema": SchemaViolationError,
    "validation": ValidationFailedError,
    "cancelled": GenerationCancelledError,
}


class GenerationFailure(BaseModel):
    """Structured generation failure.

    Attributes:
        status: Discriminator.
        phase: Phase that caused termination.
        reason: Actionable, human-readable reason.
        validation: Validation result when the phase is "validation".
        usage: Cumulative usage across every attempt made.
        attempts: All attempts made, in order.
        states: Trace of orchestrator states.
        correlation_id: Request identifier.
        snippet: Leading characters of the last unusable output.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["failure"] = "failure"
    phase: FailurePhase
    reason: str
    validation: ValidationResult | None = None
    usage: UsageRecord
    attempts: list[GenerationAttempt] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    correlation_id: str
    snippet: str | None = None

    def to_exception(self) -> GenerationError:
        """Build the exception matching the failure phase.

        Returns:
            Exception instance describing this failure.
        """
        if self.phase == "validation" and self.validation is not None:
            return ValidationFailedError(
                self.reason,
                score=self.validation.score,
                errors=list(self.validation.errors),
                warnings=list(self.validation.warnings),
                correlation_id=self.correlation_id,
            )
        if self.phase in ("parse", "schema"):
            exc_type = _FAILURE_EXCEPTIONS[self.phase]
            return exc_type(  # type: ignore[call-arg]
                self.reason, snippet=self.snippet, correlation_id=self.correlation_id
            )
        if self.phase == "validation":
            return ValidationFailedError(
                self.reason, score=0, correlation_id=self.correlation_id
            )
        return _FAILURE_EXCEPTIONS[self.phase](
            self.reason, correlation_id=self.correlation_id
        )

    def raise_for_failure(self) -> None:
        """Raise the exception matching the failure phase.

        Raises:
            GenerationError: Subclass selected by ``phase``.
        """
        raise self.to_exception()


GenerationOutcome = GenerationSuccess | GenerationFailure
