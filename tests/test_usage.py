"""Unit tests for usage normalization and cost folding."""

import pytest

from examforge.config.profile import PricingConfig
from examforge.metrics.usage import RawUsage, UsageAggregator, estimate_tokens
from examforge.schemas.generation import TokenUsage, UsageRecord


@pytest.fixture
def aggregator() -> UsageAggregator:
    """Fixture providing an aggregator with default prices."""
    return UsageAggregator()


@pytest.mark.unit
class TestToRecord:
    """Tests for pricing a single attempt."""

    def test_reported_counters_should_be_priced(
        self, aggregator: UsageAggregator
    ) -> None:
        """
        Scenario: A transport reports 1000 prompt and 500 completion tokens.
        Action: Convert to a record with default prices.
        Then: Costs follow the per-million price table and nothing is estimated.
        """
        raw = RawUsage(prompt_tokens=1000, completion_tokens=500)

        record = aggregator.to_record(raw)

        assert record.total_tokens == 1500
        assert record.input_cost == pytest.approx(0.0001)
        assert record.output_cost == pytest.approx(0.0002)
        assert record.total_cost == pytest.approx(0.0003)
        assert record.attempts == 1
        assert not record.estimated
        assert record.model == "gemini-2.5-flash-lite"

    def test_missing_counters_should_be_estimated(
        self, aggregator: UsageAggregator
    ) -> None:
        """
        Scenario: A transport reports no counters.
        Action: Convert using the prompt and output text lengths.
        Then: Counts are ceil(len / 4) and the record is tagged estimated.
        """
        raw = RawUsage(prompt_text="a" * 401, output_text="b" * 40)

        record = aggregator.to_record(raw)

        assert record.prompt_tokens == 101
        assert record.completion_tokens == 10
        assert record.estimated

    def test_failed_call_should_cost_prompt_only(
        self, aggregator: UsageAggregator
    ) -> None:
        """
        Scenario: A transport failure with the prompt already sent.
        Action: Convert the raw usage without output text.
        Then: Only prompt tokens are charged.
        """
        record = aggregator.to_record(RawUsage.from_response(None, prompt_text="x" * 8))

        assert record.prompt_tokens == 2
        assert record.completion_tokens == 0
        assert record.output_cost == 0.0

    def test_record_should_use_its_own_price_table(
        self, aggregator: UsageAggregator
    ) -> None:
        """
        Scenario: Raw usage carrying a different price table.
        Action: Convert it.
        Then: The record's prices win over the aggregator default.
        """
        pricing = PricingConfig(
            model="other", input_cost_per_million=1.0, output_cost_per_million=2.0
        )
        raw = RawUsage.from_response(
            TokenUsage(prompt_tokens=1000, completion_tokens=1000, total_tokens=2000),
            pricing=pricing,
        )

        record = aggregator.to_record(raw)

        assert record.total_cost == pytest.approx(0.003)
        assert record.model == "other"

    def test_estimate_tokens_should_round_up(self) -> None:
        """
        Scenario: Texts of various lengths.
        Action: Estimate with 4 characters per token.
        Then: Counts are rounded up.
        """
        assert estimate_tokens("", 4) == 0
        assert estimate_tokens("abc", 4) == 1
        assert estimate_tokens("abcde", 4) == 2


@pytest.mark.unit
class TestFold:
    """Tests for folding attempts into cumulative usage."""

    def test_fold_should_sum_every_field(self, aggregator: UsageAggregator) -> None:
        """
        Scenario: Three attempts of 1500 tokens each.
        Action: Fold them.
        Then: Tokens, costs and attempts are summed.
        """
        raws = [RawUsage(prompt_tokens=1000, completion_tokens=500)] * 3

        record = aggregator.fold(raws)

        assert record.total_tokens == 4500
        assert record.total_cost == pytest.approx(0.0009)
        assert record.attempts == 3

    def test_fold_should_be_associative(self, aggregator: UsageAggregator) -> None:
        """
        Scenario: Three attempts with mixed reported and estimated counters.
        Action: Fold at once and fold in nested groups.
        Then: Both results are equal.
        """
        a = RawUsage(prompt_tokens=1234, completion_tokens=567)
        b = RawUsage(prompt_text="p" * 999, output_text="o" * 333)
        c = RawUsage(
            prompt_tokens=10,
            completion_tokens=20,
            pricing=PricingConfig(model="m2", input_cost_per_million=3.3),
        )

        flat = aggregator.fold([a, b, c])
        nested = aggregator.fold([aggregator.fold([a, b]), aggregator.fold([c])])

        costs = {"input_cost", "output_cost", "total_cost"}
        assert nested.model_dump(exclude=costs) == flat.model_dump(exclude=costs)
        assert nested.total_cost == pytest.approx(flat.total_cost)
        assert nested.input_cost == pytest.approx(flat.input_cost)

    def test_fold_of_nothing_should_be_empty(self, aggregator: UsageAggregator) -> None:
        """
        Scenario: No attempts were made.
        Action: Fold an empty list.
        Then: The zero record is returned.
        """
        assert aggregator.fold([]) == UsageRecord()

    def test_fold_should_merge_model_names(self, aggregator: UsageAggregator) -> None:
        """
        Scenario: Attempts priced for two different models.
        Action: Fold them twice over.
        Then: Model names are merged once each, sorted.
        """
        first = RawUsage(prompt_tokens=1, completion_tokens=1)
        second = RawUsage(
            prompt_tokens=1, completion_tokens=1, pricing=PricingConfig(model="alpha")
        )

        record = aggregator.fold([aggregator.fold([first, second]), second])

        assert record.model == "alpha+gemini-2.5-flash-lite"

    def test_add_should_propagate_estimated_flag(
        self, aggregator: UsageAggregator
    ) -> None:
        """
        Scenario: A reported record followed by an estimated attempt.
        Action: Add the attempt.
        Then: The cumulative record is tagged estimated.
        """
        cumulative = aggregator.to_record(
            RawUsage(prompt_tokens=100, completion_tokens=100)
        )

        record = aggregator.add(cumulative, RawUsage(prompt_text="abcd"))

        assert record.estimated
        assert record.attempts == 2
        assert record.prompt_tokens == 101


@pytest.mark.unit
class TestFormatting:
    """Tests for log rendering helpers."""

    def test_format_cost_should_use_six_decimals(self) -> None:
        """
        Scenario: A small USD amount.
        Action: Format it.
        Then: A dollar-prefixed six-decimal string.
        """
        assert UsageAggregator.format_cost(0.00021) == "$0.000210"

    def test_describe_should_summarize_record(self) -> None:
        """
        Scenario: An estimated record of two attempts.
        Action: Describe it.
        Then: Tokens, cost, attempts and the estimate tag are rendered.
        """
        record = UsageRecord(
            total_tokens=1500, total_cost=0.00021, attempts=2, estimated=True
        )

        assert UsageAggregator.describe(record) == (
            "1500 tokens, $0.000210 (2 attempts) [estimated]"
        )
