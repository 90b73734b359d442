"""
Rule-driven boilerplate removal for extracted article text.
"""

from __future__ import annotations

import re
from typing import Iterable, Pattern

import structlog

from newsharvest.config.config import CleanerRules

logger = structlog.get_logger(__name__)

_INLINE_WS_RE = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NL_RE = re.compile(r" ?\n ?")
_EXCESS_NL_RE = re.compile(r"\n{3,}")


def normalize_whitespace(text: str) -> str:
    """Collapse inline whitespace to single spaces and 3+ line breaks to 2."""
    text = _INLINE_WS_RE.sub(" ", text)
    text = _SPACE_AROUND_NL_RE.sub("\n", text)
    return _EXCESS_NL_RE.sub("\n\n", text)


def _alternation(phrases: Iterable[str], *, word_end: bool = False) -> str:
    # Longest first so "Read more:" wins over "Read more".
    ordered = sorted({p.strip() for p in phrases if p.strip()}, key=len, reverse=True)
    if not word_end:
        return "|".join(re.escape(p) for p in ordered)
    # Word-final phrases must end on a word boundary; "Tags:" may run into the next token.
    return "|".join(re.escape(p) + (r"(?!\w)" if p[-1].isalnum() else "") for p in ordered)


class BoilerplateCleaner:
    """
    Ordered text-transform pipeline that strips navigation, share and newsletter noise.

    Stages: whitespace normalization, removal of lines holding only a junk token,
    truncation at the first trailing-section marker, deletion of promotional phrases.
    The stages are repeated until the text is stable, which makes ``clean`` idempotent.
    """

    def __init__(self, rules: CleanerRules | None = None) -> None:
        self.rules = rules or CleanerRules()
        self._junk_lines = {token.strip().lower() for token in self.rules.junk_lines if token.strip()}
        self._marker_re = self._compile(self.rules.trailing_markers, r"^[ ]?(?:{})", re.MULTILINE, word_end=True)
        self._phrase_re = self._compile(self.rules.phrases, r"(?<!\w)(?:{})(?!\w)")

    @staticmethod
    def _compile(
        phrases: Iterable[str], template: str, flags: int = 0, *, word_end: bool = False
    ) -> Pattern[str] | None:
        body = _alternation(phrases, word_end=word_end)
        if not body:
            return None
        return re.compile(template.format(body), re.IGNORECASE | flags)

    def clean(self, raw_text: str) -> str:
        if not raw_text:
            return ""

        text = normalize_whitespace(raw_text)
        while True:
            cleaned = self._single_pass(text)
            if cleaned == text:
                break
            text = cleaned

        result = text.strip()
        if len(result) != len(raw_text.strip()):
            logger.debug("Boilerplate removed", before=len(raw_text), after=len(result))
        return result

    def _single_pass(self, text: str) -> str:
        text = self._drop_junk_lines(text)
        text = self._truncate_trailing(text)
        text = self._delete_phrases(text)
        return normalize_whitespace(text).strip()

    def _drop_junk_lines(self, text: str) -> str:
        if not self._junk_lines:
            return text
        lines = text.split("\n")
        return "\n".join(line for line in lines if line.strip().lower() not in self._junk_lines)

    def _truncate_trailing(self, text: str) -> str:
        if self._marker_re is None:
            return text
        match = self._marker_re.search(text)
        if match is None:
            return text
        return text[: match.start()]

    def _delete_phrases(self, text: str) -> str:
        if self._phrase_re is None:
            return text
        return self._phrase_re.sub("", text)
