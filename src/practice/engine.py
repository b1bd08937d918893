"""
Practice Engine.

Orchestration layer over the session manager, candidate pool, selector,
answer evaluator, ability estimator and mastery scheduler. One engine is
built per request around a database session; every public operation is a
single transaction that commits on success and rolls back on any error.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Settings, get_settings
from src.core.errors import InternalError, PracticeError
from src.db.gateway import PracticeGateway
from src.db.models import TopicMastery
from src.practice.ability import AbilityConfig, AbilityEstimator
from src.practice.answer_evaluator import AnswerEvaluator, XPRule
from src.practice.candidate_pool import CandidatePoolBuilder, PoolConfig
from src.practice.models import AnswerResult, DeliveredQuestion, SessionSummary
from src.practice.scheduler import MasteryConfig, MasteryScheduler, SM2Config, SM2Scheduler
from src.practice.selector import QuestionSelector
from src.practice.session_manager import SessionManager


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class PracticeEngine:
    """
    Entry point for the four practice operations.

    Example:
        engine = PracticeEngine(db_session)
        session_id = engine.start_session("learner-1", "exam-1", "physics", "recall", 50)
        delivered = engine.next_question("learner-1", session_id)
        result = engine.submit_answer("learner-1", session_id, delivered.delivery_id, "B", 12.5)
        engine.end_session("learner-1", session_id)
    """

    def __init__(
        self,
        db: Session,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings or get_settings()
        self._clock = clock or utcnow
        self._gateway = PracticeGateway(db)

        s = self.settings
        self.estimator = AbilityEstimator(
            AbilityConfig(
                learning_rate=s.irt_learning_rate,
                scaling=s.irt_scaling,
                discrimination=s.irt_discrimination,
                mcq_guessing=s.irt_mcq_guessing,
            )
        )
        self.scheduler = MasteryScheduler(
            self._gateway,
            SM2Scheduler(
                SM2Config(
                    initial_easiness=s.sm2_initial_ease,
                    minimum_easiness=s.sm2_minimum_ease,
                    first_interval=s.sm2_first_interval_days,
                    second_interval=s.sm2_second_interval_days,
                    relearn_delay_minutes=s.relearn_delay_minutes,
                )
            ),
            MasteryConfig(
                smoothing=s.mastery_smoothing,
                expected_response_seconds=s.expected_response_seconds,
            ),
        )
        self.pool_builder = CandidatePoolBuilder(
            self._gateway,
            PoolConfig(
                weak_threshold=s.weak_mastery_threshold,
                strong_threshold=s.strong_mastery_threshold,
                hard_difficulty_threshold=s.hard_difficulty_threshold,
                due_soon_hours=s.due_soon_hours,
                fallback_pool_size=s.fallback_pool_size,
                srq_candidate_limit=s.srq_candidate_limit,
            ),
        )
        self.selector = QuestionSelector(rng)
        self.sessions = SessionManager(
            self._gateway,
            self.pool_builder,
            self.selector,
            self.scheduler,
            mix_batch_size=s.mix_batch_size,
        )
        self.evaluator = AnswerEvaluator(
            self._gateway,
            self.estimator,
            self.scheduler,
            XPRule(
                correct=s.xp_correct,
                incorrect=s.xp_incorrect,
                bonus_multiplier=s.bonus_xp_multiplier,
            ),
        )

    @property
    def gateway(self) -> PracticeGateway:
        return self._gateway

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        """Commit on success; roll back and translate persistence failures."""
        try:
            yield
            self._gateway.commit()
        except PracticeError:
            self._gateway.rollback()
            raise
        except SQLAlchemyError as exc:
            self._gateway.rollback()
            logger.exception(f"Persistence failure during {operation}")
            raise InternalError(f"Persistence failure during {operation}") from exc

    # ========================================
    # Operations
    # ========================================

    def start_session(
        self,
        learner_id: str,
        exam_id: str,
        subject_id: str,
        mode: str,
        xp_goal: int,
    ) -> str:
        """Create a session and return its id."""
        with self._transaction("start"):
            session = self.sessions.start(
                learner_id, exam_id, subject_id, mode, xp_goal, self._clock()
            )
            session_id = session.id
        return session_id

    def next_question(self, learner_id: str, session_id: str) -> DeliveredQuestion:
        """Select, record and return the next question."""
        with self._transaction("next"):
            delivered = self.sessions.next_question(learner_id, session_id, self._clock())
        return delivered

    def submit_answer(
        self,
        learner_id: str,
        session_id: str,
        delivery_id: str,
        answer: Any,
        time_taken_seconds: float,
        confidence_level: str | None = None,
    ) -> AnswerResult:
        """Score an answer for a delivery."""
        with self._transaction("answer"):
            result = self.evaluator.submit(
                learner_id,
                session_id,
                delivery_id,
                answer,
                time_taken_seconds,
                confidence_level,
                self._clock(),
            )
        return result

    def end_session(self, learner_id: str, session_id: str) -> None:
        """Complete a session."""
        with self._transaction("end"):
            self.sessions.end(learner_id, session_id, self._clock())

    # ========================================
    # Read side
    # ========================================

    def session_summary(self, learner_id: str, session_id: str) -> SessionSummary:
        with self._transaction("summary"):
            summary = self.sessions.summary(learner_id, session_id)
        return summary

    def learner_mastery(self, learner_id: str) -> list[TopicMastery]:
        with self._transaction("mastery"):
            rows = self._gateway.learner_topic_mastery(learner_id)
        return rows

    def learner_theta(self, learner_id: str) -> float:
        profile = self._gateway.get_ability_profile(learner_id)
        return 0.0 if profile is None else float(profile.theta)
