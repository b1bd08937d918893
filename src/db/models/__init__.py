# SQLAlchemy models
from .base import Base
from .practice import (
    AbilityProfile,
    PracticeDelivery,
    PracticeSession,
    Question,
    QuestionAttempt,
    SpacedRepetitionItem,
    TopicMastery,
)

__all__ = [
    # Base
    "Base",
    # Content
    "Question",
    # Session lifecycle
    "PracticeSession",
    "PracticeDelivery",
    "QuestionAttempt",
    # Learner state
    "TopicMastery",
    "SpacedRepetitionItem",
    "AbilityProfile",
]
