"""JSON file exam repository: one file per exam under a directory."""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any

from examforge.exceptions import StorageError
from examforge.logger import get_logger
from examforge.schemas.exam import ExamDocument
from examforge.schemas.generation import UsageRecord, ValidationResult
from examforge.storage.base import ExamRepository, to_storage_record

logger = get_logger(__name__)


class JSONFileExamRepository(ExamRepository):
    """Stores each exam as ``<directory>/<exam_id>.json``.

    Attributes:
        directory: Output directory, created on first save.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, exam_id: str) -> Path:
        return self.directory / f"{exam_id}.json"

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def _read(self, path: Path) -> dict[str, Any]:
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    async def save(
        self,
        document: ExamDocument,
        usage: UsageRecord,
        validation: ValidationResult | None = None,
    ) -> str:
        exam_id = uuid.uuid4().hex
        path = self._path(exam_id)
        data = to_storage_record(document, usage, validation).model_dump(mode="json")

        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            logger.error("Exam write failed: path=%s", path)
            logger.debug("Write failure details: %s", e, exc_info=True)
            raise StorageError(f"Could not write exam to {path}", cause=e) from e

        logger.info(
            "Exam stored: exam_id=%s, path=%s, questions=%d, degraded=%s",
            exam_id,
            path,
            len(document.questions),
            document.degraded,
        )
        return exam_id

    async def get(self, exam_id: str) -> dict[str, Any]:
        path = self._path(exam_id)
        try:
            return await asyncio.to_thread(self._read, path)
        except FileNotFoundError as e:
            raise StorageError(f"Exam not found: {exam_id}") from e
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Exam read failed: path=%s", path)
            logger.debug("Read failure details: %s", e, exc_info=True)
            raise StorageError(f"Could not read exam from {path}", cause=e) from e
