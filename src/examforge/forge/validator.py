"""Content validation gate for generated questions.

The validator scores a question set along three additive components, each
starting at its configured maximum and only decreasing:

- Structural: required fields, option arity, duplicate options, items
  rejected during recovery.
- Quality: self-admitted error phrases in explanations, visual references
  in question text, over-long explanations.
- Domain: answer membership in the options, target-language characters,
  sanity of ``$...$`` math markup.

The final score is the clamped sum; passing is purely threshold driven.
Errors and warnings are reported separately, prefixed with ``Q<n>:``.
"""

import re
from collections.abc import Sequence

from examforge.config.profile import ValidatorConfig
from examforge.logger import get_logger
from examforge.schemas.exam import ExamDocument, Question, QuestionType, RejectedItem
from examforge.schemas.generation import ValidationResult

logger = get_logger(__name__)

_MATH_SPAN = re.compile(r"(?<!\\)\$([^$]+)\$")
_UNESCAPED_DOLLAR = re.compile(r"(?<!\\)\$")
_FRAC = re.compile(r"\\frac")


def _brace_group_end(text: str, pos: int) -> int | None:
    """Return the index just after a balanced ``{...}`` group starting at pos.

    Leading whitespace is skipped. Returns None when no balanced group starts
    there.
    """
    while pos < len(text) and text[pos].isspace():
        pos += 1
    if pos >= len(text) or text[pos] != "{":
        return None

    depth = 0
    for i in range(pos, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _braces_balanced(span: str) -> bool:
    depth = 0
    for char in span:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def markup_problems(text: str) -> list[str]:
    """Find malformed math markup in a text.

    Args:
        text: Question or explanation text.

    Returns:
        Human-readable problem descriptions, in order of appearance.
    """
    problems: list[str] = []

    if len(_UNESCAPED_DOLLAR.findall(text)) % 2:
        problems.append("unpaired '$' math delimiter")

    for match in _MATH_SPAN.finditer(text):
        span = match.group(1)
        if not _braces_balanced(span):
            problems.append(f"unbalanced braces in ${span}$")
            continue
        for frac in _FRAC.finditer(span):
            numerator_end = _brace_group_end(span, frac.end())
            if numerator_end is None or _brace_group_end(span, numerator_end) is None:
                problems.append(f"malformed \\frac in ${span}$")
                break

    return problems


class ContentValidator:
    """Scores a question set and renders a pass/fail decision.

    Pure and deterministic: the same input always yields the same score and
    the same ordering of messages.

    Attributes:
        config: Thresholds, penalties and phrase lists.
    """

    def __init__(self, config: ValidatorConfig | None = None):
        self.config = config or ValidatorConfig()
        self._language_chars = (
            re.compile(self.config.language_character_pattern)
            if self.config.language_character_pattern
            else None
        )

    def validate(
        self,
        questions: Sequence[Question],
        rejected: Sequence[RejectedItem] = (),
    ) -> ValidationResult:
        """Score a question set.

        Args:
            questions: Normalized questions.
            rejected: Items dropped during recovery; each counts as a
                structural error.

        Returns:
            Clamped score, pass decision, errors, warnings and the raw
            component values.
        """
        cfg = self.config
        errors: list[str] = []
        warnings: list[str] = []

        if not questions and not rejected:
            errors.append("document contains no questions")
            return ValidationResult(
                score=0,
                passed=False,
                errors=errors,
                warnings=warnings,
                breakdown={"structural": 0, "quality": 0, "domain": 0},
            )

        structural = cfg.structural_max - self._structural(
            questions, rejected, errors
        )
        quality = cfg.quality_max - self._quality(questions, errors, warnings)
        domain = cfg.domain_max - self._domain(questions, errors, warnings)

        score = max(0, min(cfg.max_score, structural + quality + domain))
        passed = score >= cfg.pass_threshold

        logger.debug(
            "Validation completed: score=%d, passed=%s, structural=%d, quality=%d, "
            "domain=%d, errors=%d, warnings=%d",
            score,
            passed,
            structural,
            quality,
            domain,
            len(errors),
            len(warnings),
        )

        return ValidationResult(
            score=score,
            passed=passed,
            errors=errors,
            warnings=warnings,
            breakdown={"structural": structural, "quality": quality, "domain": domain},
        )

    def validate_document(self, document: ExamDocument) -> ValidationResult:
        """Score a recovered document, including its rejected items."""
        return self.validate(document.questions, document.rejected)

    def _structural(
        self,
        questions: Sequence[Question],
        rejected: Sequence[RejectedItem],
        errors: list[str],
    ) -> int:
        cfg = self.config
        deduction = 0

        for q in questions:
            tag = f"Q{q.id}"
            requires_options = q.type is QuestionType.MULTIPLE_CHOICE
            if (
                not q.question
                or not q.correct_answer
                or not q.explanation
                or (requires_options and not q.options)
            ):
                errors.append(f"{tag}: missing required field")
                deduction += cfg.missing_field_penalty

            if (
                requires_options
                and q.options is not None
                and len(q.options) != cfg.expected_option_count
            ):
                errors.append(
                    f"{tag}: expected {cfg.expected_option_count} options, "
                    f"got {len(q.options)}"
                )
                deduction += cfg.option_count_penalty

            if q.options is not None and len(set(q.options)) != len(q.options):
                errors.append(f"{tag}: duplicate options")
                deduction += cfg.duplicate_options_penalty

        for item in rejected:
            errors.append(f"Q{item.index}: rejected during recovery: {item.reason}")
            deduction += cfg.missing_field_penalty

        return deduction

    def _quality(
        self,
        questions: Sequence[Question],
        errors: list[str],
        warnings: list[str],
    ) -> int:
        cfg = self.config
        deduction = 0

        for q in questions:
            tag = f"Q{q.id}"
            explanation = q.explanation.casefold()
            for phrase in cfg.self_admitted_error_phrases:
                occurrences = explanation.count(phrase.casefold())
                if occurrences:
                    errors.append(
                        f'{tag}: explanation admits a wrong answer: "{phrase}" '
                        f"x{occurrences}"
                    )
                    deduction += cfg.self_admitted_error_penalty * occurrences

            question_text = q.question.casefold()
            for word in cfg.visual_reference_words:
                if word.casefold() in question_text:
                    warnings.append(f'{tag}: visual reference: "{word}"')
                    deduction += cfg.visual_reference_penalty

            if len(q.explanation) > cfg.max_explanation_chars:
                warnings.append(
                    f"{tag}: explanation too long: {len(q.explanation)} chars "
                    f"(max {cfg.max_explanation_chars})"
                )
                deduction += cfg.long_explanation_penalty

        return deduction

    def _domain(
        self,
        questions: Sequence[Question],
        errors: list[str],
        warnings: list[str],
    ) -> int:
        cfg = self.config
        deduction = 0

        for q in questions:
            tag = f"Q{q.id}"
            if q.options is not None and q.correct_answer not in q.options:
                errors.append(
                    f'{tag}: correct answer "{q.correct_answer}" is not an option'
                )
                deduction += cfg.answer_not_in_options_penalty

            if self._language_chars is not None and not self._language_chars.search(
                q.question + q.explanation
            ):
                warnings.append(f"{tag}: no target-language characters")
                deduction += cfg.missing_language_chars_penalty

            for problem in markup_problems(q.question):
                warnings.append(f"{tag}: {problem}")
                deduction += cfg.markup_penalty

        return deduction
