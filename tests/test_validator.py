"""Unit tests for the content validation gate."""

import random
from collections.abc import Callable

import pytest

from examforge.config.profile import GenerationProfile, ValidatorConfig
from examforge.forge.validator import ContentValidator, markup_problems
from examforge.schemas.exam import ExamDocument, Question, QuestionType, RejectedItem


@pytest.fixture
def validator() -> ContentValidator:
    """Fixture providing a validator with default Finnish settings."""
    return ContentValidator()


@pytest.fixture
def balanced_validator() -> ContentValidator:
    """Validator whose component maxima sum to exactly 100."""
    return ContentValidator(
        ValidatorConfig(structural_max=40, quality_max=45, domain_max=15)
    )


@pytest.mark.unit
class TestScoring:
    """Tests for component scoring and the pass decision."""

    def test_clean_set_should_score_full_marks(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """A clean question set passes with a clamped perfect score.

        Given:
            Fifteen valid Finnish multiple-choice questions.
        When:
            Validating them.
        Then:
            Score 100, passed, no errors or warnings, untouched components.
        """
        questions = [question_factory(n) for n in range(1, 16)]

        result = validator.validate(questions)

        assert result.score == 100
        assert result.passed
        assert result.errors == []
        assert result.warnings == []
        assert result.breakdown == {"structural": 75, "quality": 45, "domain": 15}

    def test_empty_set_should_score_zero(self, validator: ContentValidator) -> None:
        """An empty question set cannot pass.

        Given:
            No questions and no rejected items.
        When:
            Validating.
        Then:
            Score 0 with a single explanatory error.
        """
        result = validator.validate([])

        assert result.score == 0
        assert not result.passed
        assert result.errors == ["document contains no questions"]

    def test_components_should_add_up(
        self,
        balanced_validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Deductions from different components are additive.

        Given:
            One question with three options and one with a visual reference.
        When:
            Validating with maxima summing to 100.
        Then:
            Score is 100 - 5 (option count) - 5 (visual reference).
        """
        questions = [
            question_factory(1, options=("2", "3", "4")),
            question_factory(2, question="Katso kuva. Mikä on 2 + 2 päässä?"),
        ]

        result = balanced_validator.validate(questions)

        assert result.breakdown == {"structural": 35, "quality": 40, "domain": 15}
        assert result.score == 90
        assert result.passed

    def test_score_should_be_clamped_at_zero(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Massive deductions never produce a negative score.

        Given:
            Ten questions whose explanations admit errors twice each.
        When:
            Validating.
        Then:
            Score is 0.
        """
        questions = [
            question_factory(n, explanation="Huom: oikea vastaus on jokin muu.")
            for n in range(1, 11)
        ]

        result = validator.validate(questions)

        assert result.score == 0
        assert not result.passed
        assert result.breakdown["quality"] < 0

    def test_pass_threshold_should_be_configurable(
        self, question_factory: Callable[..., Question]
    ) -> None:
        """Passing is purely threshold driven.

        Given:
            A balanced validator with threshold 96 and a set scoring 95.
        When:
            Validating.
        Then:
            The set fails.
        """
        validator = ContentValidator(
            ValidatorConfig(
                structural_max=40, quality_max=45, domain_max=15, pass_threshold=96
            )
        )

        result = validator.validate([question_factory(1, options=("2", "3", "4"))])

        assert result.score == 95
        assert not result.passed


@pytest.mark.unit
class TestStructuralChecks:
    """Tests for the structural component."""

    def test_missing_explanation_should_be_error(
        self,
        balanced_validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Empty required fields are structural errors.

        Given:
            A question with an empty explanation.
        When:
            Validating.
        Then:
            A "missing required field" error for Q1.
        """
        result = balanced_validator.validate([question_factory(1, explanation="")])

        assert "Q1: missing required field" in result.errors
        assert result.breakdown["structural"] == 35

    def test_wrong_option_count_should_be_error(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Multiple-choice arity must match the configuration.

        Given:
            A question with five options.
        When:
            Validating.
        Then:
            An error naming the expected and actual counts.
        """
        question = question_factory(3, options=("6", "7", "8", "9", "10"))

        result = validator.validate([question])

        assert "Q3: expected 4 options, got 5" in result.errors

    def test_open_questions_should_not_need_options(
        self, validator: ContentValidator
    ) -> None:
        """Short-answer questions are exempt from option checks.

        Given:
            A short-answer question without options.
        When:
            Validating.
        Then:
            No errors.
        """
        question = Question(
            id=1,
            type=QuestionType.SHORT_ANSWER,
            question="Selitä, mitä nimittäjä tarkoittaa.",
            correct_answer="Murtoluvun alaosa.",
            explanation="Nimittäjä kertoo osien määrän.",
        )

        assert validator.validate([question]).errors == []

    def test_rejected_items_should_count_as_errors(
        self,
        balanced_validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Items rejected during recovery reduce the structural score.

        Given:
            One valid question and one rejected item at position 2.
        When:
            Validating.
        Then:
            An error names the rejected item and its reason.
        """
        rejected = (RejectedItem(index=2, reason="duplicate options"),)

        result = balanced_validator.validate([question_factory(1)], rejected)

        assert result.errors == ["Q2: rejected during recovery: duplicate options"]
        assert result.score == 95

    def test_validate_document_should_include_rejected_items(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Documents are validated with their rejected items.

        Given:
            A document carrying one rejected item.
        When:
            Validating the document.
        Then:
            The rejection is reported.
        """
        document = ExamDocument(
            questions=(question_factory(1),),
            rejected=(RejectedItem(index=2, reason="missing question text"),),
        )

        result = validator.validate_document(document)

        assert result.errors == ["Q2: rejected during recovery: missing question text"]


@pytest.mark.unit
class TestQualityChecks:
    """Tests for the quality component."""

    def test_one_self_admitted_phrase_should_be_error(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """A single self-correction is flagged but absorbed by the clamp.

        Given:
            Fifteen questions, one explanation containing "Huom:".
        When:
            Validating.
        Then:
            An error is reported, quality drops by 25, the set still passes.
        """
        questions = [question_factory(n) for n in range(1, 16)]
        questions[4] = question_factory(5, explanation="Huom: tulos on 10.")

        result = validator.validate(questions)

        assert result.errors == ['Q5: explanation admits a wrong answer: "Huom:" x1']
        assert result.breakdown["quality"] == 20
        assert result.passed

    def test_self_corrected_answer_should_fail_validation(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """A model that corrects itself in an explanation fails the gate.

        Given:
            Fifteen questions, one explanation saying "Huom: oikea vastaus on".
        When:
            Validating.
        Then:
            The score drops to 85 and the set fails.
        """
        questions = [question_factory(n) for n in range(1, 16)]
        questions[6] = question_factory(
            7, explanation="Huom: oikea vastaus on 15, valitaan lähin."
        )

        result = validator.validate(questions)

        assert result.score == 85
        assert not result.passed
        assert all(error.startswith("Q7: ") for error in result.errors)

    def test_phrase_match_should_be_case_insensitive(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Phrases are matched regardless of case.

        Given:
            An explanation containing "KORJATAAN".
        When:
            Validating.
        Then:
            The phrase is reported.
        """
        question = question_factory(1, explanation="KORJATAAN tulos: 2.")

        result = validator.validate([question])

        assert any("Korjataan" in error for error in result.errors)

    def test_visual_reference_should_be_warning(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Visual references are non-blocking.

        Given:
            A question text mentioning a table ("taulukko").
        When:
            Validating.
        Then:
            A warning names the word and no error is reported.
        """
        question = question_factory(1, question="Katso taulukko. Mikä on 1 + 1 tässä?")

        result = validator.validate([question])

        assert result.warnings == ['Q1: visual reference: "taulukko"']
        assert result.errors == []

    def test_long_explanation_should_be_warning(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Explanations over budget are flagged.

        Given:
            A 600-character explanation.
        When:
            Validating.
        Then:
            A warning states the length and the limit.
        """
        question = question_factory(1, explanation="ä" * 600)

        result = validator.validate([question])

        assert result.warnings == ["Q1: explanation too long: 600 chars (max 500)"]


@pytest.mark.unit
class TestDomainChecks:
    """Tests for the domain correctness component."""

    def test_answer_not_in_options_should_be_error(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """A designated answer outside the options is blocking.

        Given:
            A question whose answer is not among its options.
        When:
            Validating.
        Then:
            An error quotes the answer.
        """
        question = question_factory(1, correct_answer="99")

        result = validator.validate([question])

        assert result.errors == ['Q1: correct answer "99" is not an option']
        assert result.breakdown["domain"] == 10

    def test_missing_language_characters_should_be_warning(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Finnish text is expected to contain Finnish letters.

        Given:
            A question and explanation written in English.
        When:
            Validating with Finnish settings.
        Then:
            A warning reports the missing characters.
        """
        question = question_factory(
            1, question="What is 1 + 1?", explanation="One plus one is two."
        )

        result = validator.validate([question])

        assert result.warnings == ["Q1: no target-language characters"]

    def test_english_profile_should_not_require_special_characters(
        self, question_factory: Callable[..., Question]
    ) -> None:
        """Language heuristics follow the injected profile.

        Given:
            An English validator and an English question.
        When:
            Validating.
        Then:
            No warnings.
        """
        validator = ContentValidator(GenerationProfile().for_language("en").validator)
        question = question_factory(
            1, question="What is 1 + 1?", explanation="One plus one is two."
        )

        assert validator.validate([question]).warnings == []

    def test_malformed_markup_should_be_warning(
        self,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Broken math markup in the question text is flagged.

        Given:
            A question with an unbalanced brace inside $...$.
        When:
            Validating.
        Then:
            A markup warning for Q1.
        """
        question = question_factory(1, question="Laske $\\frac{1}{2$ + 1 päässä.")

        result = validator.validate([question])

        assert result.warnings == ["Q1: unbalanced braces in $\\frac{1}{2$"]


@pytest.mark.unit
class TestMarkupProblems:
    """Tests for math markup sanity checks."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Laske $\\frac{1}{2} + \\frac{1}{4}$.", []),
            ("Hinta on 5 $.", ["unpaired '$' math delimiter"]),
            ("Laske $\\frac{1}2$.", ["malformed \\frac in $\\frac{1}2$"]),
            ("Laske $x^{2$.", ["unbalanced braces in $x^{2$"]),
            ("Ei matematiikkaa.", []),
            ("Hinta \\$5 ja \\$6.", []),
        ],
    )
    def test_markup_problems_should_report_malformed_spans(
        self, text: str, expected: list[str]
    ) -> None:
        """Only malformed spans are reported.

        Given:
            A text with or without math markup.
        When:
            Checking it.
        Then:
            The expected problems are listed.
        """
        assert markup_problems(text) == expected


@pytest.mark.unit
class TestDeterminism:
    """Property-style checks over random question sets."""

    @pytest.mark.parametrize("seed", range(10))
    def test_validation_should_be_deterministic_and_bounded(
        self,
        seed: int,
        validator: ContentValidator,
        question_factory: Callable[..., Question],
    ) -> None:
        """Same input, same output, always within bounds.

        Given:
            A random mix of clean and flawed questions.
        When:
            Validating the set twice.
        Then:
            Identical results, a score in [0, 100] and a threshold-driven pass.
        """
        rng = random.Random(seed)
        flaws = [
            {},
            {"explanation": "Huom: tulos on eri."},
            {"options": ("1", "2", "3")},
            {"question": "Katso kuva ja laske 2 + 2 tässä."},
            {"explanation": ""},
            {"correct_answer": "ei mikään"},
        ]
        questions = [
            question_factory(n, **rng.choice(flaws))
            for n in range(1, rng.randint(1, 20) + 1)
        ]

        first = validator.validate(questions)
        second = validator.validate(questions)

        assert first == second
        assert 0 <= first.score <= 100
        assert first.passed is (first.score >= validator.config.pass_threshold)
