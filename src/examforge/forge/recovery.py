"""Multi-strategy recovery of structured exam documents from model text.

Model output is semi-structured: usually JSON, sometimes wrapped in a
markdown fence, with stray control characters, escaped newlines leaking into
structural whitespace, trailing commas or unquoted keys. Recovery runs an
ordered list of pure repair strategies, from least to most invasive, and
stops at the first one that yields a JSON object.

Pipeline:
    1. Reject obvious non-payloads (HTML, XML) with NonPayloadError.
    2. Strip a markdown fence, trying several marker spellings.
    3. Trim surrounding prose to the outermost ``{...}`` span.
    4. Try each strategy in RECOVERY_STRATEGIES.
    5. Require a top-level ``questions`` array (SchemaViolationError).
    6. Normalize the raw document into canonical Questions.
"""

import json
import re
import time
from collections.abc import Callable
from typing import Any

from examforge.exceptions import (
    NonPayloadError,
    SchemaViolationError,
    UnparseableOutputError,
)
from examforge.forge.normalizer import normalize_document
from examforge.logger import get_logger
from examforge.schemas.exam import ExamDocument

logger = get_logger(__name__)

SNIPPET_CHARS = 200

RecoveryStrategy = Callable[[str], Any]

FENCE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.DOTALL)
    for pattern in (
        r"```json\s*\n(.*?)\n```",
        r"```json\s*(.*?)```",
        r"```json\s*\n(.*?)```",
        r"```json(.*?)```",
        r"```\s*\n(.*?)\n```",
        r"```\s*(.*?)```",
        r"```\s*\n(.*?)```",
        r"```(.*?)```",
    )
)

_NON_PAYLOAD_MARKERS = ("<!doctype", "<html", "<?xml")

_LEADING_JUNK = re.compile(r"^[\ufeff\x00-\x1f]+")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
# Escaped-newline artifacts: backslash-n, backslash + whitespace + n, and a
# backslash right before a real line break.
_ESCAPED_NEWLINE = re.compile(r"\\(?:n|[ \t]+n|\r?\n)")
_STRUCTURAL_NEWLINE = re.compile(r"\\+(?:n|[ \t]+n|\r?\n)")
# LaTeX commands whose first letter is also a JSON escape letter. A single
# backslash before one of these is a command, not an escape.
_ESCAPE_LIKE_COMMAND = re.compile(
    r"(?:b(?:eta|ar|inom|oxed|igl|igr|ig|mod|ot|ullet|ackslash|egin)"
    r"|f(?:rac|orall|lat)"
    r"|n(?:eq|e|abla|u|otin|ot|eg|ewline|i|mid|earrow)"
    r"|r(?:ho|ightarrow|ight|angle|floor|ceil|brace)"
    r"|t(?:imes|heta|au|anh|an|extbf|extit|ext|frac|o|op|riangle|ilde))"
    r"(?![a-zA-Z])"
)
_HEX_ESCAPE = re.compile(r"u[0-9a-fA-F]{4}")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([a-zA-Z_][a-zA-Z0-9_]*)\s*:")
_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION_SPACING = (
    (re.compile(r"\s*\{\s*"), "{"),
    (re.compile(r"\s*\}\s*"), "}"),
    (re.compile(r"\s*\[\s*"), "["),
    (re.compile(r"\s*\]\s*"), "]"),
    (re.compile(r"\s*:\s*"), ":"),
    (re.compile(r"\s*,\s*"), ","),
)


def _split_literals(text: str) -> list[tuple[bool, str]]:
    """Split text into (is_string_literal, chunk) pairs.

    String literals keep their quotes. An unterminated literal runs to the
    end of the text.
    """
    chunks: list[tuple[bool, str]] = []
    start = 0
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                chunks.append((True, text[start : i + 1]))
                start = i + 1
                in_string = False
        elif char == '"':
            if i > start:
                chunks.append((False, text[start:i]))
            start = i
            in_string = True

    if start < len(text):
        chunks.append((in_string, text[start:]))
    return chunks


def _repair_literal(literal: str) -> str:
    """Repair backslashes inside one string literal.

    Escaped-newline artifacts become a space, lone backslashes that do not
    start a JSON escape are doubled, and valid escapes (including an escaped
    backslash) are kept as they are.
    """
    out: list[str] = []
    i = 0
    length = len(literal)

    while i < length:
        char = literal[i]
        if char != "\\" or i + 1 >= length:
            out.append(char)
            i += 1
            continue

        following = literal[i + 1]
        if following in "\"\\/":
            out.append(literal[i : i + 2])
            i += 2
        elif _HEX_ESCAPE.match(literal, i + 1):
            out.append(literal[i : i + 6])
            i += 6
        elif _ESCAPE_LIKE_COMMAND.match(literal, i + 1):
            out.append("\\\\")
            i += 1
        else:
            artifact = _ESCAPED_NEWLINE.match(literal, i)
            if artifact:
                out.append(" ")
                i = artifact.end()
            elif following in "bfrt":
                out.append(literal[i : i + 2])
                i += 2
            else:
                out.append("\\\\")
                i += 1

    return "".join(out)


def _repair_structure(chunk: str) -> str:
    cleaned = _STRUCTURAL_NEWLINE.sub(" ", chunk)
    cleaned = _TRAILING_COMMA.sub(r"\1", cleaned)
    cleaned = _UNQUOTED_KEY.sub(r'\1"\2":', cleaned)
    return _WHITESPACE.sub(" ", cleaned)


def _sanitize(payload: str) -> str:
    cleaned = _LEADING_JUNK.sub("", payload)
    cleaned = _CONTROL_CHARS.sub("", cleaned).strip()

    return "".join(
        _repair_literal(chunk) if is_literal else _repair_structure(chunk)
        for is_literal, chunk in _split_literals(cleaned)
    ).strip()


def _load_if_strict(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError:
        return None


def strategy_sanitized(payload: str) -> Any:
    """Parse after basic sanitization.

    Well-formed JSON is returned as parsed, without any repair. Otherwise
    the byte-order mark and control characters are removed, and the text is
    repaired chunk by chunk. Inside string literals, escaped-newline
    artifacts become spaces and lone backslashes are doubled, while LaTeX
    commands such as \\neq or \\times keep their backslash. Outside them,
    escaped newlines and trailing commas are dropped, bare keys are quoted
    and whitespace is collapsed.

    Args:
        payload: Fence-stripped model text.

    Returns:
        Parsed JSON value.

    Raises:
        json.JSONDecodeError: If the sanitized text is still not JSON.
    """
    data = _load_if_strict(payload)
    if data is not None:
        return data
    return json.loads(_sanitize(payload))


def _compact(chunk: str) -> str:
    for pattern, replacement in _PUNCTUATION_SPACING:
        chunk = pattern.sub(replacement, chunk)
    return chunk


def strategy_compact_punctuation(payload: str) -> Any:
    """Parse after sanitization plus whitespace removal around punctuation.

    Raw line breaks inside string literals become spaces; string contents
    are otherwise left alone.

    Args:
        payload: Fence-stripped model text.

    Returns:
        Parsed JSON value.

    Raises:
        json.JSONDecodeError: If the compacted text is still not JSON.
    """
    cleaned = "".join(
        chunk.replace("\r", " ").replace("\n", " ") if is_literal else _compact(chunk)
        for is_literal, chunk in _split_literals(_sanitize(payload))
    )
    return json.loads(cleaned)


def strategy_reemit(payload: str) -> Any:
    """Parse after re-emitting the text character by character.

    Outside string literals, literal backslash-n sequences become a space and
    real newlines are collapsed to a space. Inside string literals characters
    pass through unchanged, so intended escapes in values survive.

    Args:
        payload: Fence-stripped model text.

    Returns:
        Parsed JSON value.

    Raises:
        json.JSONDecodeError: If the re-emitted text is still not JSON.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    length = len(payload)

    while i < length:
        char = payload[i]
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
            out.append(char)
        elif char == "\\" and i + 1 < length and payload[i + 1] == "n":
            out.append(" ")
            i += 1
        elif char in "\r\n\t ":
            if not out or out[-1] != " ":
                out.append(" ")
        else:
            out.append(char)
        i += 1

    return json.loads("".join(out).strip(), strict=False)


RECOVERY_STRATEGIES: tuple[tuple[str, RecoveryStrategy], ...] = (
    ("sanitized", strategy_sanitized),
    ("compact_punctuation", strategy_compact_punctuation),
    ("reemit", strategy_reemit),
)


def reject_non_payload(raw: str) -> None:
    """Fail fast on text that is clearly not a structured payload.

    Args:
        raw: Raw model output.

    Raises:
        NonPayloadError: If the text is an HTML or XML document.
    """
    head = raw.lstrip("\ufeff \t\r\n").lower()
    if head.startswith(_NON_PAYLOAD_MARKERS):
        raise NonPayloadError(
            "Model returned a markup document instead of JSON",
            snippet=raw[:SNIPPET_CHARS],
        )


def strip_fence(raw: str) -> str:
    """Return the content of the first markdown code fence, if any.

    Args:
        raw: Raw model output.

    Returns:
        Fence content, or the input unchanged when no fence matches.
    """
    if "```" not in raw:
        return raw
    for pattern in FENCE_PATTERNS:
        match = pattern.search(raw)
        if match:
            return match.group(1)
    return raw


def trim_to_object(text: str) -> str:
    """Trim prose around the outermost JSON object.

    Args:
        text: Candidate payload.

    Returns:
        Text from the first ``{`` to the last ``}``, or the stripped input
        when no such span exists.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text.strip()


class StructuredTextRecovery:
    """Turns raw model output into a canonical ExamDocument.

    Attributes:
        language: Target language used for normalization placeholders.
        strategies: Ordered (name, strategy) pairs tried on each payload.
    """

    def __init__(
        self,
        language: str = "fi",
        strategies: tuple[tuple[str, RecoveryStrategy], ...] = RECOVERY_STRATEGIES,
    ):
        self.language = language
        self.strategies = strategies

    def parse(self, raw: str) -> ExamDocument:
        """Recover a structured exam document.

        Args:
            raw: Raw model output.

        Returns:
            Normalized document; every question satisfies the
            multiple-choice invariant, inconsistent items are listed in
            ``rejected``.

        Raises:
            NonPayloadError: If the text is an HTML or XML document.
            UnparseableOutputError: If every strategy failed.
            SchemaViolationError: If the parsed object has no question list.
        """
        reject_non_payload(raw)

        start = time.perf_counter()
        payload = trim_to_object(strip_fence(raw))

        data, strategy = self._run_strategies(payload, raw)

        if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
            logger.warning(
                "Parsed payload lacks a question list: strategy=%s, type=%s",
                strategy,
                type(data).__name__,
            )
            raise SchemaViolationError(
                "Parsed document has no 'questions' array",
                snippet=raw[:SNIPPET_CHARS],
            )

        document = normalize_document(data, language=self.language, strategy=strategy)

        logger.debug(
            "Recovery completed: strategy=%s, questions=%d, rejected=%d, "
            "variant=%s, elapsed_ms=%.2f",
            strategy,
            len(document.questions),
            len(document.rejected),
            document.variant,
            (time.perf_counter() - start) * 1000,
        )
        return document

    def _run_strategies(self, payload: str, raw: str) -> tuple[Any, str]:
        last_error: Exception | None = None

        for name, strategy in self.strategies:
            try:
                return strategy(payload), name
            except (ValueError, RecursionError) as e:
                logger.debug("Recovery strategy failed: strategy=%s, error=%s", name, e)
                last_error = e

        logger.warning(
            "All recovery strategies failed: strategies=%d, chars=%d",
            len(self.strategies),
            len(raw),
        )
        raise UnparseableOutputError(
            f"Could not parse model output after {len(self.strategies)} strategies",
            snippet=raw[:SNIPPET_CHARS],
            cause=last_error,
        )
