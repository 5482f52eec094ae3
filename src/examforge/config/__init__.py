"""Configuration management for ExamForge.

This package provides the GenerationProfile configuration system,
including YAML serialization, overrides, and per-language heuristics.
"""

from examforge.config.languages import (
    ENGLISH,
    FINNISH,
    LANGUAGE_PACKS,
    SWEDISH,
    LanguagePack,
    get_language_pack,
)
from examforge.config.profile import (
    DegeneracyConfig,
    EscalationConfig,
    GenerationProfile,
    PricingConfig,
    TransportConfig,
    ValidatorConfig,
)

__all__ = [
    "GenerationProfile",
    "DegeneracyConfig",
    "ValidatorConfig",
    "EscalationConfig",
    "PricingConfig",
    "TransportConfig",
    "LanguagePack",
    "LANGUAGE_PACKS",
    "FINNISH",
    "ENGLISH",
    "SWEDISH",
    "get_language_pack",
]
