"""
Pass/fail quality gate for cleaned article text.
"""

from __future__ import annotations

from typing import Optional, Union

import structlog

from newsharvest.config.config import QualityConfig
from newsharvest.models import ExtractionResult, Rejection, RejectionReason

logger = structlog.get_logger(__name__)


def count_words(text: str) -> int:
    """Count words made of alphabetic characters only; digits and punctuation are dropped first."""
    letters = "".join(ch for ch in text if ch.isalpha() or ch.isspace())
    return len(letters.split())


class QualityGate:
    """
    Converts cleaned text into an ExtractionResult or a typed Rejection.

    Checks run in order and stop at the first failure:
    anti-bot wall phrases, character floor, alphabetic word floor.
    """

    def __init__(self, config: QualityConfig | None = None) -> None:
        self.config = config or QualityConfig()
        self.logger = logger.bind(component="QualityGate")

    def detect_security_wall(self, text: str) -> Optional[str]:
        """Return the first challenge phrase found in ``text``, if any."""
        lowered = text.lower()
        for phrase in self.config.security_phrases:
            if phrase in lowered:
                return phrase
        return None

    def validate(self, cleaned_text: str, source_url: str) -> Union[ExtractionResult, Rejection]:
        phrase = self.detect_security_wall(cleaned_text)
        if phrase is not None:
            self.logger.info("Security wall detected", url=source_url, phrase=phrase)
            return Rejection(RejectionReason.SECURITY_WALL_DETECTED, f"matched {phrase!r}")

        char_count = len(cleaned_text)
        if char_count < self.config.min_content_length:
            return Rejection(
                RejectionReason.TOO_SHORT,
                f"{char_count} chars < {self.config.min_content_length}",
            )

        word_count = count_words(cleaned_text)
        if word_count < self.config.min_word_count:
            return Rejection(
                RejectionReason.TOO_FEW_WORDS,
                f"{word_count} words < {self.config.min_word_count}",
            )

        return ExtractionResult(
            content=cleaned_text,
            source_url=source_url,
            word_count=word_count,
            char_count=char_count,
        )
