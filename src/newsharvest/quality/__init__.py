"""Content quality gating."""

from __future__ import annotations

from .gate import QualityGate, count_words

__all__ = ["QualityGate", "count_words"]
