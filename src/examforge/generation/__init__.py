"""Exam generation loop, transports and prompt management.

This package provides the escalating generation orchestrator, the
transport abstraction over hosted and local models, transient-failure
backoff and prompt templating.
"""

from examforge.generation.backoff import backoff_delay, call_with_backoff
from examforge.generation.orchestrator import (
    GenerationOrchestrator,
    GenerationRun,
    OrchestratorState,
)
from examforge.generation.prompts import (
    EXAM_GENERATION_TEMPLATE,
    PromptTemplate,
    build_exam_prompt,
)
from examforge.generation.transports import (
    BaseGenerationTransport,
    LlamaCppTransport,
    OpenAITransport,
    create_transport,
)

__all__ = [
    "GenerationOrchestrator",
    "GenerationRun",
    "OrchestratorState",
    "BaseGenerationTransport",
    "OpenAITransport",
    "LlamaCppTransport",
    "create_transport",
    "call_with_backoff",
    "backoff_delay",
    "PromptTemplate",
    "EXAM_GENERATION_TEMPLATE",
    "build_exam_prompt",
]
