"""
Core Module - Shared domain concepts.

Components:
- errors: Practice engine error taxonomy (kind + HTTP status)
- mastery: Mastery level labels and topic snapshots
- log_config: loguru sink configuration

Design Principle:
src/db/, src/practice/, src/api/ and src/cli/ import shared concepts from
src/core/ rather than from each other.
"""

from src.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidArgumentError,
    InvalidStateError,
    NoQuestionsAvailableError,
    NotFoundError,
    PracticeError,
)
from src.core.mastery import MasteryLevel, TopicMasterySnapshot

__all__ = [
    # Errors
    "PracticeError",
    "InvalidArgumentError",
    "NotFoundError",
    "ForbiddenError",
    "InvalidStateError",
    "ConflictError",
    "NoQuestionsAvailableError",
    "InternalError",
    # Mastery
    "MasteryLevel",
    "TopicMasterySnapshot",
]
