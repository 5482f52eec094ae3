"""Edge facade chaining generation, fallback and persistence.

This module provides the ExamForgeRunner class which turns one generation
request into a stored exam: successful documents are stored as generated,
unparseable outputs are replaced by a degraded placeholder exam so that the
caller still receives an editable record.
"""

import random
import time

from pydantic import BaseModel, ConfigDict

from examforge.exceptions import StorageError
from examforge.forge.fallback import create_fallback_document
from examforge.forge.shuffler import shuffle_document
from examforge.generation.orchestrator import GenerationOrchestrator
from examforge.logger import CorrelationAdapter, bind_correlation, get_logger
from examforge.metrics.usage import UsageAggregator
from examforge.schemas.exam import ExamDocument
from examforge.schemas.generation import (
    GenerationFailure,
    GenerationOutcome,
    GenerationRequest,
    GenerationSuccess,
    ValidationResult,
)
from examforge.storage.base import ExamRepository

logger = get_logger(__name__)

FALLBACK_PHASES = frozenset({"parse", "schema"})


class ExamRunReport(BaseModel):
    """Result of one runner invocation.

    Attributes:
        outcome: Orchestrator outcome (success or structured failure).
        exam_id: Identifier of the stored exam, None if nothing was stored.
        degraded: True when the stored exam is the fallback placeholder.
        duration_ms: Wall-clock duration of the whole run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    outcome: GenerationOutcome
    exam_id: str | None = None
    degraded: bool = False
    duration_ms: float = 0.0

    @property
    def stored(self) -> bool:
        """Whether an exam was persisted."""
        return self.exam_id is not None

    @property
    def succeeded(self) -> bool:
        """Whether generation produced a validated exam."""
        return isinstance(self.outcome, GenerationSuccess)


class ExamForgeRunner:
    """Generate, optionally shuffle, and store one exam per request.

    Attributes:
        orchestrator: Generation loop.
        repository: Persistence collaborator.
        shuffle_options: If True, option order is shuffled before storing.
    """

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        repository: ExamRepository,
        shuffle_options: bool = False,
        rng: random.Random | None = None,
    ):
        """Initialize the runner.

        Args:
            orchestrator: Generation loop to call.
            repository: Where generated exams are stored.
            shuffle_options: Whether to shuffle multiple-choice options.
            rng: Random source for shuffling (seed it for reproducibility).
        """
        self.orchestrator = orchestrator
        self.repository = repository
        self.shuffle_options = shuffle_options
        self._rng = rng

    async def run(self, request: GenerationRequest) -> ExamRunReport:
        """Generate and store an exam.

        Args:
            request: Generation request.

        Returns:
            Report with the outcome and the stored exam id, if any.

        Raises:
            StorageError: If the repository cannot store the exam.
        """
        start = time.perf_counter()
        log = bind_correlation(logger, request.correlation_id)

        outcome = await self.orchestrator.generate(request)

        if isinstance(outcome, GenerationSuccess):
            document = outcome.document
            if self.shuffle_options:
                document = shuffle_document(document, self._rng)
            exam_id = await self._store(
                log, document, outcome, validation=outcome.validation
            )
            log.info(
                "Exam generated: exam_id=%s, questions=%d, score=%d, usage=%s",
                exam_id,
                len(document.questions),
                outcome.validation.score,
                UsageAggregator.describe(outcome.usage),
            )
            return self._report(outcome, exam_id, False, start)

        if outcome.phase in FALLBACK_PHASES:
            log.warning(
                "Storing fallback exam: phase=%s, reason=%s",
                outcome.phase,
                outcome.reason,
            )
            document = create_fallback_document(request.source_text, request.language)
            exam_id = await self._store(log, document, outcome, validation=None)
            return self._report(outcome, exam_id, True, start)

        log.warning(
            "Exam not stored: phase=%s, reason=%s", outcome.phase, outcome.reason
        )
        return self._report(outcome, None, False, start)

    async def _store(
        self,
        log: CorrelationAdapter,
        document: ExamDocument,
        outcome: GenerationOutcome,
        validation: ValidationResult | None,
    ) -> str:
        try:
            return await self.repository.save(document, outcome.usage, validation)
        except StorageError as e:
            log.error("Exam storage failed: error=%s", e)
            log.debug("Storage failure details: %s", e, exc_info=True)
            raise

    @staticmethod
    def _report(
        outcome: GenerationSuccess | GenerationFailure,
        exam_id: str | None,
        degraded: bool,
        start: float,
    ) -> ExamRunReport:
        return ExamRunReport(
            outcome=outcome,
            exam_id=exam_id,
            degraded=degraded,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
