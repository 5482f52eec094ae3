"""ExamForge - Resilient structured exam generation from language models.

This package provides tools for generating exam questions from source
material with a language model, screening and recovering the raw output,
validating the result and accounting for token usage and cost.
"""

__version__ = "0.1.0"

from examforge.exceptions import (
    ConfigError,
    DegenerateOutputError,
    ExamForgeError,
    GenerationCancelledError,
    GenerationError,
    NonPayloadError,
    SchemaViolationError,
    StorageError,
    TransientTransportError,
    TransportError,
    UnparseableOutputError,
    ValidationFailedError,
)

__all__ = [
    "__version__",
    "ExamForgeError",
    "ConfigError",
    "GenerationError",
    "TransportError",
    "TransientTransportError",
    "DegenerateOutputError",
    "UnparseableOutputError",
    "NonPayloadError",
    "SchemaViolationError",
    "ValidationFailedError",
    "GenerationCancelledError",
    "StorageError",
]
