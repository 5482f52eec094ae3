"""Normalization of raw model documents into canonical questions.

Models emit two document shapes. The canonical shape uses ``question``,
``options``, ``correct_answer`` and ``explanation``; an older prompt
generation produced short keys (``q``, ``choices``, ``answer``). The shape is
detected once per document and every item is converted into a canonical
Question before any validation runs.

Items that cannot become a consistent Question are collected as
RejectedItem entries instead of being silently dropped, so the validator can
account for them.
"""

import json
from enum import Enum
from typing import Any

from examforge.config.languages import get_language_pack
from examforge.logger import get_logger
from examforge.schemas.exam import ExamDocument, Question, QuestionType, RejectedItem

logger = get_logger(__name__)


class RawDocumentVariant(str, Enum):
    """Shapes of model documents understood by the normalizer."""

    CANONICAL = "canonical"
    LEGACY_SHORT_KEYS = "legacy_short_keys"


def detect_variant(data: dict[str, Any]) -> RawDocumentVariant:
    """Detect which document shape the model emitted.

    Args:
        data: Parsed document with a ``questions`` list.

    Returns:
        LEGACY_SHORT_KEYS when any item carries ``q`` without ``question``,
        CANONICAL otherwise.
    """
    for item in data.get("questions") or []:
        if isinstance(item, dict) and "q" in item and "question" not in item:
            return RawDocumentVariant.LEGACY_SHORT_KEYS
    return RawDocumentVariant.CANONICAL


def _snippet(item: Any) -> str:
    try:
        text = json.dumps(item, ensure_ascii=False)
    except (TypeError, ValueError):
        text = repr(item)
    return text[:200]


def _answer_text(value: Any) -> tuple[str, bool]:
    """Convert a raw answer to text, reporting whether it was a boolean."""
    if isinstance(value, bool):
        return ("true" if value else "false"), True
    if value is None:
        return "", False
    return str(value), False


def _options(value: Any) -> tuple[str, ...] | None:
    if not isinstance(value, list):
        return None
    return tuple(str(option) for option in value)


def _question_type(value: Any, has_options: bool, boolean_answer: bool) -> QuestionType:
    try:
        return QuestionType(value)
    except (ValueError, TypeError):
        pass
    if boolean_answer:
        return QuestionType.TRUE_FALSE
    if has_options:
        return QuestionType.MULTIPLE_CHOICE
    return QuestionType.SHORT_ANSWER


def _canonical_fields(item: dict[str, Any]) -> dict[str, Any]:
    answer, boolean_answer = _answer_text(item.get("correct_answer"))
    options = _options(item.get("options"))
    question = item.get("question")
    explanation = item.get("explanation")
    max_points = item.get("max_points")

    return {
        "raw_id": item.get("id"),
        "type": _question_type(item.get("type"), options is not None, boolean_answer),
        "question": question.strip() if isinstance(question, str) else "",
        "options": options,
        "correct_answer": answer,
        "explanation": explanation.strip() if isinstance(explanation, str) else "",
        "max_points": (
            max_points
            if isinstance(max_points, int)
            and not isinstance(max_points, bool)
            and max_points >= 0
            else None
        ),
    }


def _legacy_fields(item: dict[str, Any]) -> dict[str, Any]:
    answer, boolean_answer = _answer_text(item.get("answer"))
    options = _options(item.get("choices"))
    question = item.get("q")
    explanation = item.get("explanation")

    if boolean_answer:
        qtype = QuestionType.TRUE_FALSE
    elif options is not None:
        qtype = QuestionType.MULTIPLE_CHOICE
    else:
        qtype = QuestionType.SHORT_ANSWER

    return {
        "raw_id": None,
        "type": qtype,
        "question": question.strip() if isinstance(question, str) else "",
        "options": options,
        "correct_answer": answer,
        "explanation": explanation.strip() if isinstance(explanation, str) else "",
        "max_points": None,
    }


def _resolve_answer(options: tuple[str, ...], answer: str) -> str | None:
    """Find the exact option spelling of an answer.

    Returns:
        The answer itself when it is an option, the single option equal to it
        after stripping and casefolding, or None when there is no unique match.
    """
    if answer in options:
        return answer
    key = answer.strip().casefold()
    matches = [option for option in options if option.strip().casefold() == key]
    if len(matches) == 1:
        return matches[0]
    return None


def _check_consistency(fields: dict[str, Any]) -> str | None:
    """Enforce the option invariant, correcting the answer spelling in place.

    Returns:
        Rejection reason, or None when the item is consistent.
    """
    options: tuple[str, ...] | None = fields["options"]

    if options is None:
        if fields["type"] is QuestionType.MULTIPLE_CHOICE:
            return "multiple choice item without options"
        return None

    if len(set(options)) != len(options):
        return "duplicate options"

    resolved = _resolve_answer(options, fields["correct_answer"])
    if resolved is None:
        return "correct answer is not one of the options"
    fields["correct_answer"] = resolved
    return None


def normalize_document(
    data: dict[str, Any],
    language: str = "fi",
    strategy: str | None = None,
) -> ExamDocument:
    """Convert a parsed model document into a canonical ExamDocument.

    Args:
        data: Parsed document with a ``questions`` list.
        language: Target language, selects the explanation placeholder.
        strategy: Name of the recovery strategy that produced ``data``.

    Returns:
        Document whose questions all satisfy the option invariant.
    """
    variant = detect_variant(data)
    placeholder = get_language_pack(language).missing_explanation
    extract = (
        _legacy_fields
        if variant is RawDocumentVariant.LEGACY_SHORT_KEYS
        else _canonical_fields
    )

    questions: list[Question] = []
    rejected: list[RejectedItem] = []
    used_ids: set[int] = set()

    for index, item in enumerate(data.get("questions") or [], start=1):
        if not isinstance(item, dict):
            rejected.append(
                RejectedItem(
                    index=index, reason="item is not an object", snippet=_snippet(item)
                )
            )
            continue

        fields = extract(item)

        if not fields["question"]:
            reason: str | None = "missing question text"
        else:
            reason = _check_consistency(fields)

        if reason is not None:
            logger.debug("Question rejected: index=%d, reason=%s", index, reason)
            rejected.append(
                RejectedItem(index=index, reason=reason, snippet=_snippet(item))
            )
            continue

        raw_id = fields.pop("raw_id")
        if (
            isinstance(raw_id, int)
            and not isinstance(raw_id, bool)
            and raw_id >= 1
            and raw_id not in used_ids
        ):
            qid = raw_id
        elif index not in used_ids:
            qid = index
        else:
            qid = max(used_ids) + 1
        used_ids.add(qid)

        if not fields["explanation"]:
            fields["explanation"] = placeholder

        questions.append(Question(id=qid, **fields))

    topic = data.get("topic")
    grade = data.get("grade")

    if variant is RawDocumentVariant.LEGACY_SHORT_KEYS:
        logger.info(
            "Legacy document shape normalized: questions=%d, rejected=%d",
            len(questions),
            len(rejected),
        )

    return ExamDocument(
        questions=tuple(questions),
        topic=topic if isinstance(topic, str) else None,
        grade=grade if isinstance(grade, int) and not isinstance(grade, bool) else None,
        variant=variant.value,
        strategy=strategy,
        rejected=tuple(rejected),
    )
