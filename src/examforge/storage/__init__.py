"""Persistence collaborators for generated exams."""

from examforge.storage.base import (
    DEFAULT_MAX_POINTS,
    ExamRepository,
    StoredExam,
    StoredQuestion,
    to_storage_record,
    to_stored_question,
)
from examforge.storage.json_store import JSONFileExamRepository
from examforge.storage.memory import InMemoryExamRepository

__all__ = [
    "ExamRepository",
    "InMemoryExamRepository",
    "JSONFileExamRepository",
    "StoredExam",
    "StoredQuestion",
    "DEFAULT_MAX_POINTS",
    "to_storage_record",
    "to_stored_question",
]
