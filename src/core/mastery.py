"""
Core Mastery Module.

Labels for per-topic mastery scores, shared by the candidate pool (weak vs.
mastered topics), the API read endpoints and the CLI.

Design:
- MasteryLevel: Enum for categorizing mastery scores
- TopicMasterySnapshot: Read-only view of one topic's mastery row
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class MasteryLevel(str, Enum):
    """
    Mastery level categorization.

    WEAK topics feed the weak_new strategy, MASTERED topics feed
    hard_mastered; DEVELOPING topics are reached only through eval.
    """

    NOT_STARTED = "not_started"
    WEAK = "weak"
    DEVELOPING = "developing"
    MASTERED = "mastered"

    @classmethod
    def from_score(
        cls,
        score: float | None,
        weak_threshold: float = 0.4,
        strong_threshold: float = 0.75,
    ) -> MasteryLevel:
        """
        Convert a 0-1 mastery score to a level.

        Args:
            score: Mastery score between 0 and 1 (None when never practiced)
            weak_threshold: Scores below this are weak
            strong_threshold: Scores at or above this are mastered

        Returns:
            Corresponding MasteryLevel
        """
        if score is None:
            return cls.NOT_STARTED
        if score < weak_threshold:
            return cls.WEAK
        if score >= strong_threshold:
            return cls.MASTERED
        return cls.DEVELOPING

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def emoji(self) -> str:
        """Status emoji for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "○",
            MasteryLevel.WEAK: "◔",
            MasteryLevel.DEVELOPING: "◑",
            MasteryLevel.MASTERED: "●",
        }[self]

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.WEAK: "red",
            MasteryLevel.DEVELOPING: "yellow",
            MasteryLevel.MASTERED: "green",
        }[self]


@dataclass
class TopicMasterySnapshot:
    """Mastery state for one learner/topic pair."""

    topic_id: str
    mastery_level: float
    level: MasteryLevel
    repetition_count: int = 0
    ease_factor: float = 2.5
    interval_days: int = 0
    last_practiced: datetime | None = None
    next_review_date: datetime | None = None

    @classmethod
    def from_row(
        cls,
        row: Any,
        weak_threshold: float = 0.4,
        strong_threshold: float = 0.75,
    ) -> TopicMasterySnapshot:
        """Build from a TopicMastery ORM row."""
        score = float(row.mastery_level or 0.0)
        return cls(
            topic_id=row.topic_id,
            mastery_level=score,
            level=MasteryLevel.from_score(score, weak_threshold, strong_threshold),
            repetition_count=row.repetition_count or 0,
            ease_factor=float(row.ease_factor or 2.5),
            interval_days=row.interval_days or 0,
            last_practiced=row.last_practiced,
            next_review_date=row.next_review_date,
        )

    def is_due(self, now: datetime) -> bool:
        return self.next_review_date is not None and self.next_review_date <= now

