"""Usage and cost accounting for generation attempts."""

from examforge.metrics.usage import (
    RawUsage,
    UsageAggregator,
    estimate_tokens,
)

__all__ = [
    "RawUsage",
    "UsageAggregator",
    "estimate_tokens",
]
