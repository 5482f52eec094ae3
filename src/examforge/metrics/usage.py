"""Token usage normalization and cost accounting.

Every generation attempt consumes billable tokens, whether or not its output
is usable. Raw counters are priced per record with the record's own price
table and only then summed, so a price change between attempts is applied to
the attempts it concerns rather than to the total.

When a transport does not report counters, they are estimated from text
length with a fixed characters-per-token ratio and the record is tagged as
estimated.
"""

import math
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from examforge.config.profile import PricingConfig
from examforge.logger import get_logger
from examforge.schemas.generation import TokenUsage, UsageRecord

logger = get_logger(__name__)

TOKENS_PER_MILLION = 1_000_000


class RawUsage(BaseModel):
    """Unpriced usage of a single attempt.

    Attributes:
        prompt_tokens: Reported prompt tokens, None when unknown.
        completion_tokens: Reported completion tokens, None when unknown.
        prompt_text: Prompt sent, used for estimation.
        output_text: Text received, used for estimation.
        pricing: Price table in force for this attempt; the aggregator's
            default when None.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    prompt_tokens: int | None = Field(default=None, ge=0)
    completion_tokens: int | None = Field(default=None, ge=0)
    prompt_text: str = ""
    output_text: str = ""
    pricing: PricingConfig | None = None

    @classmethod
    def from_response(
        cls,
        usage: TokenUsage | None,
        prompt_text: str = "",
        output_text: str = "",
        pricing: PricingConfig | None = None,
    ) -> "RawUsage":
        """Build raw usage from transport counters.

        Args:
            usage: Counters reported by the transport, if any.
            prompt_text: Prompt sent.
            output_text: Text received (empty for failed calls).
            pricing: Price table in force for the attempt.

        Returns:
            RawUsage instance.
        """
        return cls(
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            prompt_text=prompt_text,
            output_text=output_text,
            pricing=pricing,
        )


def estimate_tokens(text: str, chars_per_token: int) -> int:
    """Estimate a token count from text length.

    Args:
        text: Text to measure.
        chars_per_token: Characters assumed per token.

    Returns:
        Rounded-up token estimate.
    """
    return math.ceil(len(text) / chars_per_token)


def _merge_models(models: Iterable[str]) -> str:
    names = sorted({part for model in models for part in model.split("+") if part})
    return "+".join(names)


class UsageAggregator:
    """Prices raw usage and folds records into cumulative usage.

    Attributes:
        pricing: Default price table for records without their own.
    """

    def __init__(self, pricing: PricingConfig | None = None):
        self.pricing = pricing or PricingConfig()

    def to_record(self, raw: RawUsage) -> UsageRecord:
        """Normalize and price one raw usage record.

        Args:
            raw: Unpriced usage of one attempt.

        Returns:
            Priced record counting one attempt.
        """
        pricing = raw.pricing or self.pricing
        estimated = raw.prompt_tokens is None or raw.completion_tokens is None

        prompt_tokens = (
            raw.prompt_tokens
            if raw.prompt_tokens is not None
            else estimate_tokens(raw.prompt_text, pricing.chars_per_token)
        )
        completion_tokens = (
            raw.completion_tokens
            if raw.completion_tokens is not None
            else estimate_tokens(raw.output_text, pricing.chars_per_token)
        )

        input_cost = prompt_tokens / TOKENS_PER_MILLION * pricing.input_cost_per_million
        output_cost = (
            completion_tokens / TOKENS_PER_MILLION * pricing.output_cost_per_million
        )

        if estimated:
            logger.debug(
                "Usage estimated from text length: prompt_tokens=%d, "
                "completion_tokens=%d, chars_per_token=%d",
                prompt_tokens,
                completion_tokens,
                pricing.chars_per_token,
            )

        return UsageRecord(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            input_cost=input_cost,
            output_cost=output_cost,
            total_cost=input_cost + output_cost,
            attempts=1,
            estimated=estimated,
            model=pricing.model,
        )

    def fold(self, records: Iterable[RawUsage | UsageRecord]) -> UsageRecord:
        """Fold attempts into one cumulative record.

        Raw records are priced individually first; already folded records are
        summed as they are. Folding is therefore associative:
        ``fold([a, b]) == fold([fold([a]), fold([b])])``.

        Args:
            records: Raw usage and/or previously folded records.

        Returns:
            Field-wise sum of the priced records.
        """
        priced = [
            r if isinstance(r, UsageRecord) else self.to_record(r) for r in records
        ]

        return UsageRecord(
            prompt_tokens=sum(r.prompt_tokens for r in priced),
            completion_tokens=sum(r.completion_tokens for r in priced),
            total_tokens=sum(r.total_tokens for r in priced),
            input_cost=math.fsum(r.input_cost for r in priced),
            output_cost=math.fsum(r.output_cost for r in priced),
            total_cost=math.fsum(r.total_cost for r in priced),
            attempts=sum(r.attempts for r in priced),
            estimated=any(r.estimated for r in priced),
            model=_merge_models(r.model for r in priced),
        )

    def add(self, cumulative: UsageRecord, raw: RawUsage) -> UsageRecord:
        """Fold one more attempt into a cumulative record."""
        return self.fold([cumulative, raw])

    @staticmethod
    def format_cost(cost: float, precision: int = 6) -> str:
        """Render a USD cost for logs, e.g. ``$0.000123``."""
        return f"${cost:.{precision}f}"

    @classmethod
    def describe(cls, record: UsageRecord) -> str:
        """Render a one-line usage summary for logs.

        Args:
            record: Usage record to describe.

        Returns:
            Summary such as ``"1500 tokens, $0.000210 (2 attempts)"``.
        """
        summary = (
            f"{record.total_tokens} tokens, {cls.format_cost(record.total_cost)} "
            f"({record.attempts} attempts)"
        )
        if record.estimated:
            summary += " [estimated]"
        return summary
