"""The Forge - Screening, recovery and validation of generated exams.

This package turns raw model output into validated exam documents: it
screens text for degenerate generation, recovers structured data from
noisy output, normalizes question shapes and scores the result.

The runner module is imported explicitly (``examforge.forge.runner``) since
it depends on the generation package, which itself builds on this one.
"""

from examforge.forge.degeneracy import DegeneracyDetector, is_degenerate
from examforge.forge.fallback import create_fallback_document
from examforge.forge.normalizer import (
    RawDocumentVariant,
    detect_variant,
    normalize_document,
)
from examforge.forge.recovery import (
    RECOVERY_STRATEGIES,
    StructuredTextRecovery,
    strategy_compact_punctuation,
    strategy_reemit,
    strategy_sanitized,
)
from examforge.forge.shuffler import shuffle_document, shuffle_options
from examforge.forge.validator import ContentValidator, markup_problems

__all__ = [
    "DegeneracyDetector",
    "is_degenerate",
    "StructuredTextRecovery",
    "RECOVERY_STRATEGIES",
    "strategy_sanitized",
    "strategy_compact_punctuation",
    "strategy_reemit",
    "RawDocumentVariant",
    "detect_variant",
    "normalize_document",
    "ContentValidator",
    "markup_problems",
    "create_fallback_document",
    "shuffle_options",
    "shuffle_document",
]
