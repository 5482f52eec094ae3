"""In-memory exam repository."""

import uuid
from typing import Any

from examforge.exceptions import StorageError
from examforge.logger import get_logger
from examforge.schemas.exam import ExamDocument
from examforge.schemas.generation import UsageRecord, ValidationResult
from examforge.storage.base import ExamRepository, to_storage_record

logger = get_logger(__name__)


class InMemoryExamRepository(ExamRepository):
    """Dictionary-backed repository for tests and one-off scripts."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def save(
        self,
        document: ExamDocument,
        usage: UsageRecord,
        validation: ValidationResult | None = None,
    ) -> str:
        exam_id = uuid.uuid4().hex
        record = to_storage_record(document, usage, validation)
        self._records[exam_id] = record.model_dump(mode="json")
        logger.debug(
            "Exam stored in memory: exam_id=%s, questions=%d, degraded=%s",
            exam_id,
            len(record.questions),
            record.degraded,
        )
        return exam_id

    async def get(self, exam_id: str) -> dict[str, Any]:
        try:
            return self._records[exam_id]
        except KeyError as e:
            raise StorageError(f"Exam not found: {exam_id}") from e

    def __len__(self) -> int:
        return len(self._records)
