"""Detection of degenerate model output.

Runs before parsing: a multi-megabyte looping response is cheap to flag
and expensive to repair. Three independent checks, any one of which flags
the text:

- Length: the text exceeds ``max_chars``.
- Local repetition: a substring of ``min_repeat_length`` to
  ``max_repeat_length`` characters (within one line) repeats
  ``min_consecutive_repeats`` times back to back.
- Loop phrase census: a known loop phrase occurs more than
  ``loop_phrase_threshold`` times.
"""

import re

from examforge.config.profile import DegeneracyConfig
from examforge.logger import get_logger

logger = get_logger(__name__)


class DegeneracyDetector:
    """Stateless detector of runaway or looping generation.

    Attributes:
        config: Detection thresholds and loop phrases.
    """

    def __init__(self, config: DegeneracyConfig | None = None):
        """Initialize the detector.

        Args:
            config: Detection settings; defaults to DegeneracyConfig().
        """
        self.config = config or DegeneracyConfig()
        self._repetition_pattern = re.compile(
            r"([^\n]{%d,%d}?)\1{%d,}"
            % (
                self.config.min_repeat_length,
                self.config.max_repeat_length,
                self.config.min_consecutive_repeats - 1,
            )
        )

    def diagnose(self, text: str) -> str | None:
        """Explain why the text is degenerate.

        Args:
            text: Raw model output.

        Returns:
            "length", "repetition" or "loop_phrase:<phrase>" for degenerate
            text, None otherwise.
        """
        if len(text) > self.config.max_chars:
            return "length"

        if self._has_repeated_window(text) and self._repetition_pattern.search(text):
            return "repetition"

        for phrase in self.config.loop_phrases:
            if phrase and text.count(phrase) > self.config.loop_phrase_threshold:
                return f"loop_phrase:{phrase}"

        return None

    def _has_repeated_window(self, text: str) -> bool:
        # Any back-to-back repetition repeats its leading window too, so
        # text without a repeated window can skip the regex scan.
        width = self.config.min_repeat_length
        seen: set[str] = set()
        for start in range(len(text) - width + 1):
            window = text[start : start + width]
            if window in seen:
                return True
            seen.add(window)
        return False

    def is_degenerate(self, text: str) -> bool:
        """Check whether model output is degenerate.

        Args:
            text: Raw model output.

        Returns:
            True if any degeneracy check fires.
        """
        reason = self.diagnose(text)
        if reason is not None:
            logger.debug(
                "Degenerate output detected: reason=%s, chars=%d", reason, len(text)
            )
            return True
        return False


_DEFAULT_DETECTOR: DegeneracyDetector | None = None


def is_degenerate(text: str) -> bool:
    """Check text against the default detection thresholds.

    Args:
        text: Raw model output.

    Returns:
        True if any degeneracy check fires.
    """
    global _DEFAULT_DETECTOR
    if _DEFAULT_DETECTOR is None:
        _DEFAULT_DETECTOR = DegeneracyDetector()
    return _DEFAULT_DETECTOR.is_degenerate(text)
