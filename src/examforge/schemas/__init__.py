"""Pydantic models for ExamForge data structures.

This package contains all data models used throughout the package,
organized by functional domain.
"""

from examforge.schemas.exam import (
    ExamDocument,
    Question,
    QuestionType,
    RejectedItem,
)
from examforge.schemas.generation import (
    Attachment,
    GenerationAttempt,
    GenerationFailure,
    GenerationOutcome,
    GenerationRequest,
    GenerationSuccess,
    TokenUsage,
    TransportResponse,
    UsageRecord,
    ValidationResult,
)

__all__ = [
    # Exam content
    "QuestionType",
    "Question",
    "RejectedItem",
    "ExamDocument",
    # Generation
    "Attachment",
    "GenerationRequest",
    "TokenUsage",
    "TransportResponse",
    "GenerationAttempt",
    "UsageRecord",
    "ValidationResult",
    "GenerationSuccess",
    "GenerationFailure",
    "GenerationOutcome",
]
