"""
Practice engine domain types.

Enums for modes, lifecycle states and sourcing strategies, the mode mix
table, and the dataclasses returned by engine operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.core.errors import InvalidArgumentError
from src.db.models.practice import QueueStatus, SessionStatus  # noqa: F401

if TYPE_CHECKING:
    from src.db.models import Question


class PracticeMode(str, Enum):
    """Practice mode; selects the mix of question-sourcing strategies."""

    RECALL = "recall"  # Lean on spaced-repetition reviews
    REFINE = "refine"  # Shore up weak topics
    CONQUER = "conquer"  # Hard questions on mastered topics

    @classmethod
    def parse(cls, value: str | PracticeMode | None) -> PracticeMode:
        """Convert a raw mode string, raising InvalidArgumentError if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise InvalidArgumentError(f"Invalid mode {value!r}. Must be one of: {allowed}") from None


class Strategy(str, Enum):
    """Where a candidate question came from."""

    SRQ_DUE_NOW = "srq_due_now"
    SRQ_DUE_SOON = "srq_due_soon"
    WEAK_NEW = "weak_new"
    HARD_MASTERED = "hard_mastered"
    EVAL = "eval"
    FALLBACK = "fallback"

    @property
    def from_queue(self) -> bool:
        return self in (Strategy.SRQ_DUE_NOW, Strategy.SRQ_DUE_SOON)


# Selection walks buckets in this order. Due reviews always come first.
STRATEGY_PRIORITY: tuple[Strategy, ...] = (
    Strategy.SRQ_DUE_NOW,
    Strategy.WEAK_NEW,
    Strategy.HARD_MASTERED,
    Strategy.EVAL,
    Strategy.SRQ_DUE_SOON,
    Strategy.FALLBACK,
)

# Target deliveries per strategy out of every batch of 10.
MODE_MIX: dict[PracticeMode, dict[Strategy, int]] = {
    PracticeMode.RECALL: {
        Strategy.SRQ_DUE_NOW: 4,
        Strategy.SRQ_DUE_SOON: 2,
        Strategy.WEAK_NEW: 0,
        Strategy.EVAL: 3,
        Strategy.HARD_MASTERED: 0,
    },
    PracticeMode.REFINE: {
        Strategy.SRQ_DUE_NOW: 3,
        Strategy.SRQ_DUE_SOON: 0,
        Strategy.WEAK_NEW: 4,
        Strategy.EVAL: 3,
        Strategy.HARD_MASTERED: 0,
    },
    PracticeMode.CONQUER: {
        Strategy.SRQ_DUE_NOW: 2,
        Strategy.SRQ_DUE_SOON: 0,
        Strategy.WEAK_NEW: 0,
        Strategy.EVAL: 2,
        Strategy.HARD_MASTERED: 6,
    },
}


def mix_for(mode: PracticeMode | str) -> dict[Strategy, int]:
    """Strategy weights for a mode. Strategies missing from the table weigh 0."""
    weights = MODE_MIX[PracticeMode.parse(mode)]
    return {strategy: weights.get(strategy, 0) for strategy in Strategy}


class ConfidenceLevel(str, Enum):
    """Self-reported confidence attached to an answer."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str | None) -> ConfidenceLevel | None:
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise InvalidArgumentError(
                f"Invalid confidence_level {value!r}. Must be one of: {allowed}"
            ) from None


@dataclass
class Candidate:
    """A question eligible for delivery, tagged with its source strategy."""

    question: Question
    strategy: Strategy
    queue_item_id: str | None = None

    @property
    def question_id(self) -> str:
        return self.question.id


@dataclass
class DeliveredQuestion:
    """Result of NextQuestion."""

    delivery_id: str
    question: dict[str, Any]
    strategy: Strategy
    xp_so_far: int
    xp_goal: int
    bonus_active: bool


@dataclass
class ThetaUpdate:
    """Result of one ability update."""

    theta_before: float
    theta_after: float
    probability: float

    @property
    def delta(self) -> float:
        return self.theta_after - self.theta_before


@dataclass
class MasteryUpdate:
    """Result of one mastery and scheduling step for a topic."""

    topic_id: str
    mastery_before: float
    mastery_after: float
    grade: int
    repetition_count: int
    ease_factor: float
    interval_days: int
    next_review_date: datetime
    priority_score: float


@dataclass
class AnswerResult:
    """Result of SubmitAnswer."""

    is_correct: bool
    xp_awarded: int
    attempt_id: str
    theta: ThetaUpdate
    mastery: MasteryUpdate
    bonus: bool = False


@dataclass
class SessionSummary:
    """Read-side view of a session."""

    session_id: str
    learner_id: str
    subject_id: str
    exam_id: str
    mode: str
    status: str
    xp_goal: int
    xp_so_far: int
    questions_count: int
    correct_count: int
    bonus_active: bool
    start_time: datetime
    end_time: datetime | None = None
    deliveries_by_strategy: dict[str, int] = field(default_factory=dict)

    @property
    def accuracy(self) -> float:
        if self.questions_count == 0:
            return 0.0
        return self.correct_count / self.questions_count
