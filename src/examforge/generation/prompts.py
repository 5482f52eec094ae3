"""Prompt templating system using Jinja2.

This module provides the validated template wrapper and the exam
generation prompt rendered once per generation request.
"""

from pathlib import Path
from typing import Any

from jinja2 import Template

from examforge.exceptions import ConfigError
from examforge.logger import get_logger

logger = get_logger(__name__)

LANGUAGE_NAMES = {
    "fi": "Finnish",
    "sv": "Swedish",
    "en": "English",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
}


class PromptTemplate:
    """Jinja2-based prompt template with validation.

    This class wraps Jinja2 templates and validates that all required
    variables are provided during rendering.

    Attributes:
        input_variables: List of required variable names.
    """

    def __init__(self, template: str, input_variables: list[str]):
        """Initialize the prompt template.

        Args:
            template: Jinja2 template string with {{ variable }} placeholders.
            input_variables: List of required variable names.

        Raises:
            ConfigError: If template syntax is invalid.
        """
        logger.debug(
            "Initializing prompt template: variables=%s, template_len=%d",
            input_variables,
            len(template),
        )

        try:
            self._jinja_template = Template(template)
        except Exception as e:
            logger.error("Invalid template syntax")
            logger.debug("Template error details: %s", e, exc_info=True)
            raise ConfigError(f"Invalid template syntax: {e}") from e

        self.input_variables = input_variables

    def render(self, **kwargs: Any) -> str:
        """Render the template with provided variables.

        Args:
            **kwargs: Template variables as keyword arguments.

        Returns:
            Rendered prompt string.

        Raises:
            ConfigError: If required variables are missing.
        """
        missing = set(self.input_variables) - set(kwargs.keys())
        if missing:
            logger.error("Missing template variables: %s", sorted(missing))
            raise ConfigError(f"Missing required template variables: {sorted(missing)}")

        try:
            rendered = self._jinja_template.render(**kwargs)
        except Exception as e:
            logger.error("Template rendering failed")
            logger.debug("Rendering error details: %s", e, exc_info=True)
            raise ConfigError(f"Template rendering failed: {e}") from e

        logger.debug("Template rendered: output_len=%d", len(rendered))
        return rendered

    @classmethod
    def from_file(cls, path: Path, input_variables: list[str]) -> "PromptTemplate":
        """Load template from a file.

        Args:
            path: Path to the template file.
            input_variables: List of required variable names.

        Returns:
            PromptTemplate instance.

        Raises:
            FileNotFoundError: If template file doesn't exist.
            ConfigError: If template is invalid.
        """
        if not path.exists():
            logger.error("Template file not found: path=%s", path)
            raise FileNotFoundError(f"Template file not found: {path}")

        template = path.read_text(encoding="utf-8")
        logger.info("Template loaded from file: path=%s, size=%d", path, len(template))

        return cls(template=template, input_variables=input_variables)


EXAM_GENERATION_TEMPLATE = PromptTemplate(
    template="""You are an experienced teacher writing an exam for grade {{ grade }} students.
Write the exam in {{ language_name }}, based only on the attached material.

Create exactly {{ question_count }} questions.

Rules:
- Every question stands on its own. Never refer to images, pages, tables or diagrams; the student cannot see the material.
- Multiple choice questions have exactly {{ option_count }} distinct options.
- "correct_answer" is copied character for character from one of the options.
- If you cannot produce a correct question, skip it. Never correct yourself or explain that an answer is wrong in the explanation.
- Explanations are at most {{ max_explanation_chars }} characters.
- Write mathematical notation in LaTeX between $ delimiters, e.g. $\\frac{1}{2}$.

Respond with JSON only, no prose, in this shape:
{
  "topic": "<topic>",
  "grade": {{ grade }},
  "questions": [
    {
      "id": 1,
      "type": "multiple_choice",
      "question": "<question text>",
      "options": ["<option 1>", "<option 2>", "<option 3>", "<option 4>"],
      "correct_answer": "<one of the options>",
      "explanation": "<why the answer is correct>"
    }
  ]
}
""",
    input_variables=[
        "grade",
        "language_name",
        "question_count",
        "option_count",
        "max_explanation_chars",
    ],
)


def build_exam_prompt(
    grade: int,
    language: str,
    question_count: int,
    option_count: int = 4,
    max_explanation_chars: int = 500,
    template: PromptTemplate = EXAM_GENERATION_TEMPLATE,
) -> str:
    """Render the exam generation prompt.

    Args:
        grade: Target grade.
        language: ISO 639-1 target language.
        question_count: Number of questions to request.
        option_count: Options per multiple-choice question.
        max_explanation_chars: Explanation length budget.
        template: Template to render.

    Returns:
        Rendered prompt.
    """
    return template.render(
        grade=grade,
        language_name=LANGUAGE_NAMES.get(language.lower(), language),
        question_count=question_count,
        option_count=option_count,
        max_explanation_chars=max_explanation_chars,
    )
