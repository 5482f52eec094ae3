"""Escalating generation loop with degeneracy, recovery and validation gates.

One call to ``GenerationOrchestrator.generate`` walks the temperature
schedule in order. Each scheduled attempt calls the transport (transient
failures are retried in place with backoff), folds the attempt's usage into
the cumulative record, screens the text for degeneracy and runs structured
recovery. The first attempt yielding a non-empty question set wins and the
loop stops; validation then runs once on the winner. A failed validation is
terminal.

The loop is an explicit state machine. Legal transitions:

    SCHEDULED   -> ATTEMPTING | CANCELLED
    ATTEMPTING  -> DEGENERATE | UNPARSEABLE | VALIDATING
                   | SCHEDULED | EXHAUSTED_FAILED      (transport failure)
    DEGENERATE  -> SCHEDULED | EXHAUSTED_FAILED
    UNPARSEABLE -> SCHEDULED | EXHAUSTED_FAILED
    VALIDATING  -> SUCCEEDED | VALIDATION_FAILED

SUCCEEDED, VALIDATION_FAILED, EXHAUSTED_FAILED and CANCELLED are terminal.

All per-request data (attempts, cumulative usage, state trace) lives in the
call; the orchestrator itself only holds configuration and collaborators.
Degeneracy screening and recovery are CPU-bound and run in a worker thread,
so a long response does not stall other requests on the event loop.
"""

import asyncio
import functools
import random
import time
from collections.abc import Awaitable, Callable
from enum import Enum

from examforge.config.profile import GenerationProfile
from examforge.exceptions import (
    SchemaViolationError,
    TransportError,
    UnparseableOutputError,
)
from examforge.forge.degeneracy import DegeneracyDetector
from examforge.forge.recovery import SNIPPET_CHARS, StructuredTextRecovery
from examforge.forge.validator import ContentValidator
from examforge.generation.backoff import call_with_backoff
from examforge.generation.prompts import (
    EXAM_GENERATION_TEMPLATE,
    PromptTemplate,
    build_exam_prompt,
)
from examforge.generation.transports import BaseGenerationTransport
from examforge.logger import bind_correlation, get_logger
from examforge.metrics.usage import RawUsage, UsageAggregator
from examforge.schemas.exam import ExamDocument
from examforge.schemas.generation import (
    FailurePhase,
    GenerationAttempt,
    GenerationFailure,
    GenerationOutcome,
    GenerationRequest,
    GenerationSuccess,
    TransportResponse,
    UsageRecord,
    ValidationResult,
)

logger = get_logger(__name__)


class OrchestratorState(str, Enum):
    """States of one generation call."""

    SCHEDULED = "scheduled"
    ATTEMPTING = "attempting"
    DEGENERATE = "degenerate"
    UNPARSEABLE = "unparseable"
    VALIDATING = "validating"
    SUCCEEDED = "succeeded"
    VALIDATION_FAILED = "validation_failed"
    EXHAUSTED_FAILED = "exhausted_failed"
    CANCELLED = "cancelled"


TRANSITIONS: dict[OrchestratorState, frozenset[OrchestratorState]] = {
    OrchestratorState.SCHEDULED: frozenset(
        {OrchestratorState.ATTEMPTING, OrchestratorState.CANCELLED}
    ),
    OrchestratorState.ATTEMPTING: frozenset(
        {
            OrchestratorState.DEGENERATE,
            OrchestratorState.UNPARSEABLE,
            OrchestratorState.VALIDATING,
            OrchestratorState.SCHEDULED,
            OrchestratorState.EXHAUSTED_FAILED,
        }
    ),
    OrchestratorState.DEGENERATE: frozenset(
        {OrchestratorState.SCHEDULED, OrchestratorState.EXHAUSTED_FAILED}
    ),
    OrchestratorState.UNPARSEABLE: frozenset(
        {OrchestratorState.SCHEDULED, OrchestratorState.EXHAUSTED_FAILED}
    ),
    OrchestratorState.VALIDATING: frozenset(
        {OrchestratorState.SUCCEEDED, OrchestratorState.VALIDATION_FAILED}
    ),
    OrchestratorState.SUCCEEDED: frozenset(),
    OrchestratorState.VALIDATION_FAILED: frozenset(),
    OrchestratorState.EXHAUSTED_FAILED: frozenset(),
    OrchestratorState.CANCELLED: frozenset(),
}


class GenerationRun:
    """State and trace of a single generation call.

    Attributes:
        state: Current state.
        states: Every state entered, in order.
    """

    def __init__(self) -> None:
        self.state = OrchestratorState.SCHEDULED
        self.states: list[str] = [self.state.value]

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def transition(self, target: OrchestratorState) -> None:
        """Move to ``target``.

        Raises:
            RuntimeError: If the transition is not legal.
        """
        if target not in TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal orchestrator transition: {self.state.value} -> {target.value}"
            )
        self.state = target
        self.states.append(target.value)


class GenerationOrchestrator:
    """Drives escalating generation attempts for one request at a time.

    Safe to share between concurrent requests: no per-request data is
    stored on the instance.

    Attributes:
        transport: Entered generation transport.
        profile: Generation configuration.
    """

    def __init__(
        self,
        transport: BaseGenerationTransport,
        profile: GenerationProfile | None = None,
        detector: DegeneracyDetector | None = None,
        validator: ContentValidator | None = None,
        aggregator: UsageAggregator | None = None,
        template: PromptTemplate = EXAM_GENERATION_TEMPLATE,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            transport: Generation transport, already entered.
            profile: Configuration; defaults to GenerationProfile().
            detector: Detector override; built per request language when None.
            validator: Validator override; built per request language when
                None.
            aggregator: Usage aggregator; priced with ``profile.pricing``
                when None.
            template: Exam prompt template.
            rng: Random source for backoff jitter.
            sleep: Awaitable sleep used between transient retries.
        """
        self.transport = transport
        self.profile = profile or GenerationProfile()
        self._detector = detector
        self._validator = validator
        self._aggregator = aggregator or UsageAggregator(self.profile.pricing)
        self._template = template
        self._rng = rng
        self._sleep = sleep

    def _profile_for(self, language: str) -> GenerationProfile:
        if language.lower() == self.profile.language:
            return self.profile
        return self.profile.for_language(language)

    async def generate(
        self,
        request: GenerationRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationOutcome:
        """Generate a validated question set for a request.

        Args:
            request: Immutable generation input.
            cancel_event: When set, no further attempt is scheduled and the
                call returns a "cancelled" failure with the usage so far.

        Returns:
            GenerationSuccess with the winning document, its temperature,
            validation result and cumulative usage; or GenerationFailure
            naming the phase that caused termination.

        Raises:
            asyncio.CancelledError: If the calling task is cancelled; the
                usage accumulated so far is logged first.
        """
        log = bind_correlation(logger, request.correlation_id)
        profile = self._profile_for(request.language)
        detector = self._detector or DegeneracyDetector(profile.degeneracy)
        validator = self._validator or ContentValidator(profile.validator)
        recovery = StructuredTextRecovery(language=request.language)
        escalation = profile.escalation
        schedule = escalation.temperature_schedule

        prompt = build_exam_prompt(
            grade=request.grade,
            language=request.language,
            question_count=request.question_count or profile.question_count,
            option_count=profile.validator.expected_option_count,
            max_explanation_chars=profile.validator.max_explanation_chars,
            template=self._template,
        )

        run = GenerationRun()
        attempts: list[GenerationAttempt] = []
        usage = self._aggregator.fold([])
        winner: ExamDocument | None = None
        winning_temperature = 0.0

        log.info(
            "Generation started: grade=%d, language=%s, attachments=%d, schedule=%s",
            request.grade,
            request.language,
            len(request.attachments),
            schedule,
        )

        def failure(
            phase: FailurePhase,
            reason: str,
            snippet: str | None = None,
            validation: ValidationResult | None = None,
        ) -> GenerationFailure:
            log.error(
                "Generation failed: phase=%s, reason=%s, attempts=%d, usage=%s",
                phase,
                reason,
                len(attempts),
                UsageAggregator.describe(usage),
            )
            return GenerationFailure(
                phase=phase,
                reason=reason,
                validation=validation,
                usage=usage,
                attempts=attempts,
                states=run.states,
                correlation_id=request.correlation_id,
                snippet=snippet,
            )

        try:
            for index, temperature in enumerate(schedule, start=1):
                is_last = index == len(schedule)

                if cancel_event is not None and cancel_event.is_set():
                    run.transition(OrchestratorState.CANCELLED)
                    return failure(
                        "cancelled",
                        f"Cancelled before attempt {index}/{len(schedule)}",
                    )

                run.transition(OrchestratorState.ATTEMPTING)
                log.info(
                    "Attempt started: attempt=%d/%d, temperature=%.2f",
                    index,
                    len(schedule),
                    temperature,
                )

                start = time.perf_counter()
                response: TransportResponse | None = None
                transport_error: str | None = None
                try:
                    response = await call_with_backoff(
                        functools.partial(
                            self.transport.call,
                            prompt,
                            request.attachments,
                            temperature,
                        ),
                        retries=escalation.transient_retries,
                        base_seconds=escalation.backoff_base_seconds,
                        jitter_seconds=escalation.backoff_jitter_seconds,
                        timeout=escalation.request_timeout_seconds,
                        rng=self._rng,
                        sleep=self._sleep,
                        log=log,
                    )
                except TransportError as e:
                    transport_error = e.message
                    log.debug("Transport failure details: %s", e, exc_info=True)
                except Exception as e:
                    transport_error = f"{type(e).__name__}: {e}"
                    log.error(
                        "Transport raised unexpected error: type=%s", type(e).__name__
                    )
                    log.debug(
                        "Unexpected transport error details: %s", e, exc_info=True
                    )
                duration_ms = (time.perf_counter() - start) * 1000

                text = response.text if response is not None else ""
                usage = self._aggregator.add(
                    usage,
                    RawUsage.from_response(
                        response.usage if response is not None else None,
                        prompt_text=prompt,
                        output_text=text,
                    ),
                )

                if response is None:
                    attempts.append(
                        GenerationAttempt(
                            index=index,
                            temperature=temperature,
                            duration_ms=duration_ms,
                            outcome="transport_error",
                            error=transport_error,
                        )
                    )
                    log.warning(
                        "Attempt failed in transport: attempt=%d, error=%s",
                        index,
                        transport_error,
                    )
                    if is_last:
                        run.transition(OrchestratorState.EXHAUSTED_FAILED)
                        return failure(
                            "transport",
                            f"Generation call failed: {transport_error}",
                        )
                    run.transition(OrchestratorState.SCHEDULED)
                    continue

                reason = await asyncio.to_thread(detector.diagnose, text)
                if reason is not None:
                    run.transition(OrchestratorState.DEGENERATE)
                    attempts.append(
                        GenerationAttempt(
                            index=index,
                            temperature=temperature,
                            text=text[:SNIPPET_CHARS],
                            duration_ms=duration_ms,
                            usage=response.usage,
                            outcome="degenerate",
                            error=reason,
                        )
                    )
                    log.warning(
                        "Degenerate output: attempt=%d, reason=%s, chars=%d",
                        index,
                        reason,
                        len(text),
                    )
                    if is_last:
                        run.transition(OrchestratorState.EXHAUSTED_FAILED)
                        return failure(
                            "degeneracy",
                            f"Model output degenerate on every attempt ({reason})",
                            snippet=text[:SNIPPET_CHARS],
                        )
                    run.transition(OrchestratorState.SCHEDULED)
                    continue

                phase: FailurePhase | None = None
                parse_error = ""
                try:
                    document = await asyncio.to_thread(recovery.parse, text)
                    if not document.questions:
                        raise UnparseableOutputError(
                            f"No usable questions ({len(document.rejected)} rejected)",
                            snippet=text[:SNIPPET_CHARS],
                        )
                except SchemaViolationError as e:
                    phase, parse_error = "schema", e.message
                except UnparseableOutputError as e:
                    phase, parse_error = "parse", e.message

                if phase is not None:
                    run.transition(OrchestratorState.UNPARSEABLE)
                    attempts.append(
                        GenerationAttempt(
                            index=index,
                            temperature=temperature,
                            text=text[:SNIPPET_CHARS],
                            duration_ms=duration_ms,
                            usage=response.usage,
                            outcome="unparseable",
                            error=parse_error,
                        )
                    )
                    log.warning(
                        "Unparseable output: attempt=%d, phase=%s, error=%s",
                        index,
                        phase,
                        parse_error,
                    )
                    if is_last:
                        run.transition(OrchestratorState.EXHAUSTED_FAILED)
                        return failure(
                            phase,
                            f"Could not recover structured output: {parse_error}",
                            snippet=text[:SNIPPET_CHARS],
                        )
                    run.transition(OrchestratorState.SCHEDULED)
                    continue

                attempts.append(
                    GenerationAttempt(
                        index=index,
                        temperature=temperature,
                        text=text,
                        duration_ms=duration_ms,
                        usage=response.usage,
                        outcome="parsed",
                    )
                )
                run.transition(OrchestratorState.VALIDATING)
                winner = document
                winning_temperature = temperature
                break
        except asyncio.CancelledError:
            log.warning(
                "Generation task cancelled: attempts=%d, usage=%s",
                len(attempts),
                UsageAggregator.describe(usage),
            )
            raise

        if winner is None:
            raise RuntimeError("Generation loop ended without a winner or a failure")

        validation = validator.validate_document(winner)
        for warning in validation.warnings:
            log.debug("Validation warning: %s", warning)

        if not validation.passed:
            run.transition(OrchestratorState.VALIDATION_FAILED)
            reason = (
                f"Validation score {validation.score} below threshold "
                f"{profile.validator.pass_threshold}"
            )
            if validation.errors:
                reason += ": " + "; ".join(validation.errors[:5])
            return failure("validation", reason, validation=validation)

        run.transition(OrchestratorState.SUCCEEDED)
        log.info(
            "Generation succeeded: temperature=%.2f, questions=%d, score=%d, "
            "attempts=%d, usage=%s",
            winning_temperature,
            len(winner.questions),
            validation.score,
            len(attempts),
            UsageAggregator.describe(usage),
        )

        return GenerationSuccess(
            document=winner,
            temperature=winning_temperature,
            validation=validation,
            usage=usage,
            attempts=attempts,
            states=run.states,
            correlation_id=request.correlation_id,
        )

    def generate_sync(
        self,
        request: GenerationRequest,
    ) -> GenerationOutcome:
        """Synchronous wrapper for scripts.

        Args:
            request: Immutable generation input.

        Returns:
            Generation outcome.
        """
        return asyncio.run(self.generate(request))
