"""
Data models shared across the extraction pipeline.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


@dataclass(slots=True, frozen=True)
class FeedItem:
    """A ranked news reference as returned by the aggregator."""

    title: str
    aggregator_url: str
    published_at: Optional[datetime]
    source_name: str


@dataclass(slots=True, frozen=True)
class NavigationOutcome:
    """Best-known external URL after at most one click-through hop."""

    final_url: str
    redirected: bool


@dataclass(slots=True, frozen=True)
class RenderedDocument:
    """Detached HTML snapshot of a rendered page, annotated with element box sizes."""

    url: str
    html: str


@dataclass(slots=True, frozen=True)
class ContentCandidate:
    """A scored, unconfirmed guess at the subtree holding the article body."""

    text: str
    origin_selector: Optional[str]
    area: float
    depth: int


@dataclass(slots=True, frozen=True)
class CleanedContent:
    """Candidate text after boilerplate removal."""

    text: str


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    """Accepted, validated article text."""

    content: str
    source_url: str
    word_count: int
    char_count: int


class RejectionReason(str, Enum):
    """Terminal reasons an item produced no ExtractionResult."""

    NO_CONTENT_FOUND = "no_content_found"
    SECURITY_WALL_DETECTED = "security_wall_detected"
    TOO_SHORT = "too_short"
    TOO_FEW_WORDS = "too_few_words"
    NAVIGATION_FAILED = "navigation_failed"


@dataclass(slots=True, frozen=True)
class Rejection:
    reason: RejectionReason
    detail: str = ""


class PipelineStage(str, Enum):
    """Per-item processing stages."""

    RESOLVE = "resolve"
    SNAPSHOT = "snapshot"
    SELECT = "select"
    CLEAN = "clean"
    VALIDATE = "validate"
    DELIVER = "deliver"


@dataclass(slots=True)
class ItemOutcome:
    """Terminal outcome for one FeedItem: exactly one of result or rejection."""

    item: FeedItem
    result: Optional[ExtractionResult] = None
    rejection: Optional[Rejection] = None
    final_url: Optional[str] = None
    stage: PipelineStage = PipelineStage.RESOLVE
    delivered: bool = False
    delivery_error: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.result is None) == (self.rejection is None):
            raise ValueError("ItemOutcome requires exactly one of result or rejection")

    @property
    def accepted(self) -> bool:
        return self.result is not None


@dataclass
class RunReport:
    """Summary of one pipeline run."""

    outcomes: List[ItemOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def accepted(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.accepted)

    @property
    def rejected(self) -> int:
        return len(self.outcomes) - self.accepted

    @property
    def delivered(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.delivered)

    @property
    def delivery_failures(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.accepted and not outcome.delivered)

    @property
    def rejections_by_reason(self) -> Dict[RejectionReason, int]:
        return dict(Counter(o.rejection.reason for o in self.outcomes if o.rejection is not None))

    def to_dict(self) -> Dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total": len(self.outcomes),
            "accepted": self.accepted,
            "rejected": self.rejected,
            "delivered": self.delivered,
            "delivery_failures": self.delivery_failures,
            "rejections_by_reason": {reason.value: count for reason, count in self.rejections_by_reason.items()},
        }
