"""Generation profile and sub-configurations.

This module defines the complete configuration structure for ExamForge
using Pydantic V2 for validation and type safety. Thresholds, schedules,
price tables and phrase lists live here and are injected into the
detector, validator and orchestrator at construction.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Literal, cast

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from examforge.config.languages import FINNISH, get_language_pack


class DegeneracyConfig(BaseModel):
    """Configuration for degenerate output detection.

    Attributes:
        max_chars: Output length above which generation is considered runaway.
        min_repeat_length: Shortest substring considered for repetition.
        max_repeat_length: Longest substring considered for repetition.
        min_consecutive_repeats: Back-to-back occurrences that flag a loop.
        loop_phrases: Language-specific phrases that precede loops.
        loop_phrase_threshold: Occurrences above which a loop phrase flags.
    """

    model_config = ConfigDict(strict=True, extra="forbid")

    max_chars: int = Field(
        default=50_000,
        ge=1_000,
        description="Maximum output length before flagging runaway generation",
    )
    min_repeat_length: int = Field(
        default=20,
        ge=5,
        le=500,
        description="Minimum length of a repeated substring",
    )
    max_repeat_length: int = Field(
        default=200,
        ge=20,
        le=10_000,
        description="Longest repeated substring considered (bounds scan cost)",
    )
    min_consecutive_repeats: int = Field(
        default=5,
        ge=2,
        le=100,
        description="Consecutive occurrences that flag local repetition",
    )
    loop_phrases: list[str] = Field(
        default_factory=lambda: list(FINNISH.loop_phrases),
        description="Known phrases observed before degenerate loops",
    )
    loop_phrase_threshold: int = Field(
        default=10,
        ge=1,
        description="Flag when a loop phrase occurs more often than this",
    )

    @model_validator(mode="after")
    def repeat_bounds_ordered(self) -> "DegeneracyConfig":
        """Validate that the repeated substring bounds are ordered.

        Returns:
            Validated DegeneracyConfig instance.

        Raises:
            ValueError: If max_repeat_length is below min_repeat_length.
        """
        if self.max_repeat_length < self.min_repeat_length:
            raise ValueError("max_repeat_length must be >= min_repeat_length")
        return self


class ValidatorConfig(BaseModel):
    """Configuration for the content validation gate.

    Score components start at their maximum and only decrease. The final
    score is their sum clamped to [0, max_score].

    Attributes:
        pass_threshold: Minimum final score that passes.
        max_score: Upper clamp of the final score.
        expected_option_count: Required number of options for MC items.
        max_explanation_chars: Explanation length budget.
        structural_max: Starting value of the structural component.
        quality_max: Starting value of the quality component.
        domain_max: Starting value of the domain correctness component.
        missing_field_penalty: Deduction for a missing required field.
        option_count_penalty: Deduction for wrong option arity.
        duplicate_options_penalty: Deduction for duplicate option strings.
        self_admitted_error_penalty: Deduction per self-admitted error phrase.
        visual_reference_penalty: Deduction per visual reference word.
        long_explanation_penalty: Deduction for an over-budget explanation.
        answer_not_in_options_penalty: Deduction when the answer is no option.
        missing_language_chars_penalty: Deduction when no native character.
        markup_penalty: Deduction per malformed markup span.
        self_admitted_error_phrases: Phrases scanned in explanations.
        visual_reference_words: Words scanned in question text.
        language_character_pattern: Regex class of native characters.
    """

    model_config = ConfigDict(strict=True, extra="forbid")

    pass_threshold: int = Field(default=90, ge=0, le=100)
    max_score: int = Field(default=100, ge=1)
    expected_option_count: int = Field(default=4, ge=2, le=10)
    max_explanation_chars: int = Field(default=500, ge=50)

    structural_max: int = Field(default=75, ge=0)
    quality_max: int = Field(default=45, ge=0)
    domain_max: int = Field(default=15, ge=0)

    missing_field_penalty: int = Field(default=5, ge=0)
    option_count_penalty: int = Field(default=5, ge=0)
    duplicate_options_penalty: int = Field(default=5, ge=0)
    self_admitted_error_penalty: int = Field(default=25, ge=0)
    visual_reference_penalty: int = Field(default=5, ge=0)
    long_explanation_penalty: int = Field(default=2, ge=0)
    answer_not_in_options_penalty: int = Field(default=5, ge=0)
    missing_language_chars_penalty: int = Field(default=2, ge=0)
    markup_penalty: int = Field(default=1, ge=0)

    self_admitted_error_phrases: list[str] = Field(
        default_factory=lambda: list(FINNISH.self_admitted_error_phrases),
        description="Phrases indicating the model contradicted its own answer",
    )
    visual_reference_words: list[str] = Field(
        default_factory=lambda: list(FINNISH.visual_reference_words),
        description="Words referring to visuals the learner cannot see",
    )
    language_character_pattern: str | None = Field(
        default=FINNISH.character_pattern,
        description="Regex character class expected in target-language text",
    )


class EscalationConfig(BaseModel):
    """Configuration for the retry and escalation policy.

    Attributes:
        temperature_schedule: Ordered creativity values, one per attempt.
        transient_retries: Tries per attempt for transient transport errors.
        backoff_base_seconds: First backoff delay.
        backoff_jitter_seconds: Upper bound of the random jitter added.
        request_timeout_seconds: Timeout of a single generation call.
        max_output_tokens: Generation length limit passed to the transport.
    """

    model_config = ConfigDict(strict=True, extra="forbid")

    temperature_schedule: list[float] = Field(
        default_factory=lambda: [0.0, 0.3, 0.5],
        min_length=1,
        max_length=10,
        description="Escalation schedule of temperatures",
    )
    transient_retries: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    backoff_jitter_seconds: float = Field(default=1.0, ge=0.0, le=10.0)
    request_timeout_seconds: float = Field(default=120.0, gt=0.0, le=600.0)
    max_output_tokens: int = Field(default=8192, ge=256, le=65536)

    @field_validator("temperature_schedule")
    @classmethod
    def temperatures_in_range(cls, v: list[float]) -> list[float]:
        """Validate that every scheduled temperature is within [0, 2].

        Args:
            v: Temperature schedule.

        Returns:
            Validated schedule.

        Raises:
            ValueError: If a temperature is out of range.
        """
        for temperature in v:
            if not 0.0 <= temperature <= 2.0:
                raise ValueError(f"temperature {temperature} outside [0, 2]")
        return v


class PricingConfig(BaseModel):
    """Price table for one model.

    Attributes:
        model: Model identifier the prices apply to.
        input_cost_per_million: USD per million prompt tokens.
        output_cost_per_million: USD per million completion tokens.
        chars_per_token: Ratio used when token counts must be estimated.
    """

    model_config = ConfigDict(strict=True, extra="forbid", frozen=True)

    model: str = Field(default="gemini-2.5-flash-lite")
    input_cost_per_million: float = Field(default=0.10, ge=0.0)
    output_cost_per_million: float = Field(default=0.40, ge=0.0)
    chars_per_token: int = Field(default=4, ge=1, le=16)


class TransportConfig(BaseModel):
    """Configuration for the generation transport.

    Attributes:
        backend: Transport implementation.
        model_name: Provider model identifier (remote backends).
        model_path: Local GGUF path (llama backend).
        api_key_env: Environment variable holding the API key.
        base_url: Optional OpenAI-compatible endpoint override.
        context_window: Context size for local models.
        n_gpu_layers: Layers offloaded to GPU for local models.
    """

    model_config = ConfigDict(strict=True, extra="forbid")

    backend: Literal["openai", "llama"] = Field(default="openai")
    model_name: str = Field(default="gpt-4o-mini")
    model_path: Path | None = Field(default=None)
    api_key_env: str = Field(default="OPENAI_API_KEY")
    base_url: str | None = Field(default=None)
    context_window: int = Field(default=8192, ge=512, le=128000)
    n_gpu_layers: int = Field(default=0, ge=-1)

    @model_validator(mode="after")
    def model_path_required_for_llama(self) -> "TransportConfig":
        """Validate that a model path is provided for the llama backend.

        Returns:
            Validated TransportConfig instance.

        Raises:
            ValueError: If model_path is None for the llama backend.
        """
        if self.backend == "llama" and self.model_path is None:
            raise ValueError("model_path is required when backend is 'llama'")
        return self


class GenerationProfile(BaseModel):
    """Complete generation configuration profile.

    Root configuration model aggregating every sub-configuration needed to
    run the exam generation pipeline.

    Attributes:
        language: Default target language (ISO 639-1).
        question_count: Number of questions requested from the model.
        degeneracy: Degenerate output detection settings.
        validator: Validation gate settings.
        escalation: Retry and escalation policy.
        pricing: Price table for cost accounting.
        transport: Generation transport settings.
    """

    model_config = ConfigDict(strict=True, extra="forbid")

    language: str = Field(default=FINNISH.code, min_length=2, max_length=8)
    question_count: int = Field(default=15, ge=1, le=50)
    degeneracy: DegeneracyConfig = Field(default_factory=DegeneracyConfig)
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    transport: TransportConfig = Field(
        default_factory=lambda: TransportConfig(model_path=None, base_url=None)
    )

    @field_validator("language")
    @classmethod
    def normalize_language(cls, v: str) -> str:
        """Lower-case the language code.

        Args:
            v: Language code.

        Returns:
            Normalized code.
        """
        return v.lower()

    def for_language(self, code: str) -> "GenerationProfile":
        """Return a copy whose language-specific lists match ``code``.

        Args:
            code: ISO 639-1 target language.

        Returns:
            New profile with loop phrases, self-admitted error phrases,
            visual reference words and character class swapped in.
        """
        pack = get_language_pack(code)
        return self.model_copy(
            update={
                "language": code.lower(),
                "degeneracy": self.degeneracy.model_copy(
                    update={"loop_phrases": list(pack.loop_phrases)}
                ),
                "validator": self.validator.model_copy(
                    update={
                        "self_admitted_error_phrases": list(
                            pack.self_admitted_error_phrases
                        ),
                        "visual_reference_words": list(pack.visual_reference_words),
                        "language_character_pattern": pack.character_pattern,
                    }
                ),
            }
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "GenerationProfile":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file.

        Returns:
            Validated GenerationProfile instance.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigError: If YAML is invalid or validation fails.
        """
        from examforge.exceptions import ConfigError

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            data = cls._resolve_paths(data, path.parent)

            return cls.model_validate(data)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {e}") from e
        except Exception as e:
            raise ConfigError(f"Configuration validation failed: {e}") from e

    @staticmethod
    def _resolve_paths(data: Any, base_dir: Path) -> Any:
        if isinstance(data, dict):
            return {
                k: GenerationProfile._resolve_paths(v, base_dir)
                for k, v in cast(dict[str, Any], data).items()
            }
        elif isinstance(data, list):
            return [GenerationProfile._resolve_paths(item, base_dir) for item in data]
        elif isinstance(data, str) and data.endswith(".gguf"):
            path = Path(data)
            if not path.is_absolute():
                return base_dir / path
            return path
        return data

    def to_yaml(self, path: Path) -> None:
        """Export configuration to a YAML file.

        Args:
            path: Output file path.
        """
        data = self.model_dump(mode="json")

        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                data,
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

    def with_overrides(self, overrides: dict[str, Any]) -> "GenerationProfile":
        """Create a new profile with partial overrides applied.

        Args:
            overrides: Dictionary of overrides using dotted notation.
                Example: {"validator.pass_threshold": 80,
                "escalation.temperature_schedule": [0.0, 0.7]}

        Returns:
            New GenerationProfile instance with overrides applied.

        Raises:
            ConfigOverrideError: If override key is invalid or type mismatches.
        """
        from examforge.exceptions import ConfigOverrideError

        data = self.model_dump(mode="python")

        last_key: str = ""
        for key, value in overrides.items():
            last_key = key
            parts = key.split(".")
            current = data
            for part in parts[:-1]:
                if not isinstance(current.get(part), dict):
                    raise ConfigOverrideError(
                        f"Invalid override key: {key}", field_path=key
                    )
                current = current[part]

            final_key = parts[-1]
            if final_key not in current:
                raise ConfigOverrideError(
                    f"Invalid override key: {key}", field_path=key
                )

            current[final_key] = value

        try:
            return self.model_validate(data)
        except Exception as e:
            raise ConfigOverrideError(
                f"Override validation failed: {e}", field_path=last_key
            ) from e

    def diff(self, other: "GenerationProfile") -> dict[str, tuple[Any, Any]]:
        """Compute differences between two profiles.

        Args:
            other: Another GenerationProfile to compare against.

        Returns:
            Dictionary mapping field paths to (self_value, other_value) tuples.
        """

        def _diff_recursive(
            d1: dict[str, Any], d2: dict[str, Any], prefix: str = ""
        ) -> dict[str, tuple[Any, Any]]:
            diffs: dict[str, tuple[Any, Any]] = {}
            for key in sorted(set(d1) | set(d2)):
                path = f"{prefix}.{key}" if prefix else key
                v1 = d1.get(key)
                v2 = d2.get(key)

                if isinstance(v1, dict) and isinstance(v2, dict):
                    diffs.update(
                        _diff_recursive(
                            cast(dict[str, Any], v1), cast(dict[str, Any], v2), path
                        )
                    )
                elif v1 != v2:
                    diffs[path] = (v1, v2)

            return diffs

        return _diff_recursive(
            self.model_dump(mode="python"), other.model_dump(mode="python")
        )

    def compute_hash(self) -> str:
        """Compute a deterministic hash of this configuration.

        Returns:
            SHA-256 hash of the configuration.
        """
        data_json = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(data_json.encode()).hexdigest()
