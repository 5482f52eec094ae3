"""Randomization of multiple-choice option order.

Models tend to put the correct answer first. Shuffling produces a new
Question whose ``correct_answer`` still names the same option text.
"""

import random

from examforge.logger import get_logger
from examforge.schemas.exam import ExamDocument, Question

logger = get_logger(__name__)


def shuffle_options(question: Question, rng: random.Random | None = None) -> Question:
    """Return a copy of the question with its options in random order.

    Questions without options, or whose answer is not an option, are
    returned unchanged.

    Args:
        question: Question to shuffle.
        rng: Random source; defaults to a fresh unseeded generator.

    Returns:
        New Question with permuted options, or the input question.
    """
    if not question.options or question.correct_answer not in question.options:
        logger.debug("Shuffle skipped: id=%d", question.id)
        return question

    rng = rng or random.Random()
    options = list(question.options)

    # Fisher-Yates
    for i in range(len(options) - 1, 0, -1):
        j = rng.randint(0, i)
        options[i], options[j] = options[j], options[i]

    return question.with_updates(options=tuple(options))


def shuffle_document(
    document: ExamDocument, rng: random.Random | None = None
) -> ExamDocument:
    """Shuffle the options of every question in a document.

    Args:
        document: Document to shuffle.
        rng: Random source shared across questions.

    Returns:
        New document with shuffled questions.
    """
    rng = rng or random.Random()
    return document.model_copy(
        update={"questions": tuple(shuffle_options(q, rng) for q in document.questions)}
    )
