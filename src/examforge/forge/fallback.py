"""Degraded placeholder document used when recovery cannot produce questions."""

from examforge.config.languages import get_language_pack
from examforge.logger import get_logger
from examforge.schemas.exam import ExamDocument, Question, QuestionType

logger = get_logger(__name__)

FALLBACK_EXCERPT_CHARS = 500
FALLBACK_MAX_POINTS = 5


def create_fallback_document(source_text: str, language: str = "fi") -> ExamDocument:
    """Build a single-item "review the source material" document.

    The document is flagged ``degraded`` so callers can decide whether to
    show it to learners.

    Args:
        source_text: Extracted text of the request attachments, may be empty.
        language: Target language of the placeholder texts.

    Returns:
        Degraded document with one short-answer question.
    """
    pack = get_language_pack(language)
    excerpt = source_text[:FALLBACK_EXCERPT_CHARS]
    if len(source_text) > FALLBACK_EXCERPT_CHARS:
        excerpt += "..."

    logger.warning(
        "Fallback document created: language=%s, source_chars=%d",
        pack.code,
        len(source_text),
    )

    question = Question(
        id=1,
        type=QuestionType.SHORT_ANSWER,
        question=pack.fallback_question,
        options=None,
        correct_answer=pack.fallback_answer,
        explanation=f"{pack.source_label}: {excerpt}",
        max_points=FALLBACK_MAX_POINTS,
    )

    return ExamDocument(
        questions=(question,),
        topic=pack.fallback_topic,
        variant="fallback",
        degraded=True,
    )
