"""
Adaptive Practice Engine.

Decides which question to show next, scores answers, and keeps the
learner's ability estimate, topic mastery and review queue current.

Components:
- SessionManager: Session lifecycle and the delivery ledger
- CandidatePoolBuilder: Gathers eligible questions per mode mix
- QuestionSelector: Strategy-priority pick from the pool
- AnswerEvaluator: Scores a delivery and records the attempt
- AbilityEstimator: IRT 3PL theta updates
- MasteryScheduler: Topic mastery and SM-2 review scheduling
- PracticeEngine: Main orchestration layer
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
from src.practice.ability import AbilityEstimator, ItemParameters
from src.practice.answer_evaluator import AnswerEvaluator, XPRule
from src.practice.candidate_pool import CandidatePool, CandidatePoolBuilder
from src.practice.engine import PracticeEngine
from src.practice.models import (
    MODE_MIX,
    STRATEGY_PRIORITY,
    AnswerResult,
    Candidate,
    DeliveredQuestion,
    PracticeMode,
    SessionStatus,
    SessionSummary,
    Strategy,
)
from src.practice.scheduler import MasteryScheduler, SM2Scheduler
from src.practice.selector import QuestionSelector
from src.practice.session_manager import SessionManager

__all__ = [
    # Main engine
    "PracticeEngine",
    # Component classes
    "SessionManager",
    "CandidatePoolBuilder",
    "CandidatePool",
    "QuestionSelector",
    "AnswerEvaluator",
    "XPRule",
    "AbilityEstimator",
    "ItemParameters",
    "MasteryScheduler",
    "SM2Scheduler",
    # Data models
    "PracticeMode",
    "SessionStatus",
    "Strategy",
    "MODE_MIX",
    "STRATEGY_PRIORITY",
    "Candidate",
    "DeliveredQuestion",
    "AnswerResult",
    "SessionSummary",
    # Errors
    "PracticeError",
    "InvalidArgumentError",
    "NotFoundError",
    "ForbiddenError",
    "InvalidStateError",
    "ConflictError",
    "NoQuestionsAvailableError",
    "InternalError",
]
