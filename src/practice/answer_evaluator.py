"""
Answer Evaluator.

Scores one submission against its delivery and applies the consequences:
1. Validates the delivery ticket, ownership and session state
2. Compares the answer with the stored key
3. Updates the learner's theta
4. Records the attempt (one per session/question)
5. Updates topic mastery and the review queue
6. Advances session counters and the XP bonus round
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from src.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from src.db.gateway import PracticeGateway
from src.db.models import QuestionAttempt
from src.practice.ability import AbilityEstimator
from src.practice.models import AnswerResult, ConfidenceLevel, SessionStatus
from src.practice.scheduler import MasteryScheduler
from src.practice.validation import (
    answers_match,
    require_fields,
    require_non_negative_number,
)


@dataclass
class XPRule:
    """Deterministic XP for an attempt."""

    correct: int = 10
    incorrect: int = 1
    bonus_multiplier: int = 2

    def award(self, is_correct: bool, bonus: bool = False) -> int:
        xp = self.correct if is_correct else self.incorrect
        return xp * self.bonus_multiplier if bonus else xp


class AnswerEvaluator:
    """Turn a delivery plus an answer into exactly one attempt."""

    def __init__(
        self,
        gateway: PracticeGateway,
        estimator: AbilityEstimator,
        scheduler: MasteryScheduler,
        xp_rule: XPRule | None = None,
    ):
        self._gateway = gateway
        self._estimator = estimator
        self._scheduler = scheduler
        self._xp_rule = xp_rule or XPRule()

    def submit(
        self,
        learner_id: str,
        session_id: str,
        delivery_id: str,
        answer: Any,
        time_taken_seconds: float,
        confidence_level: str | None,
        now: datetime,
    ) -> AnswerResult:
        """
        Score an answer for a delivered question.

        Raises:
            InvalidArgumentError: Missing fields or bad time_taken_seconds
            NotFoundError: Unknown delivery
            ForbiddenError: Delivery belongs to another learner or session
            InvalidStateError: Session is not in progress
            ConflictError: Question already answered in this session
        """
        require_fields(
            learner_id=learner_id,
            session_id=session_id,
            delivery_id=delivery_id,
        )
        if answer is None:
            raise InvalidArgumentError("Missing required fields: answer")
        require_non_negative_number("time_taken_seconds", time_taken_seconds)
        confidence = ConfidenceLevel.parse(confidence_level)

        delivery = self._gateway.get_delivery(delivery_id)
        if delivery is None:
            logger.warning(f"Answer submitted for unknown delivery {delivery_id}")
            raise NotFoundError("Invalid delivery id")

        session = self._gateway.get_session(delivery.session_id)
        if session is None:
            raise NotFoundError("Practice session not found")
        if session.learner_id != learner_id or delivery.session_id != session_id:
            logger.warning(
                f"Delivery {delivery_id} (session {delivery.session_id}) does not match "
                f"learner {learner_id} / session {session_id}"
            )
            raise ForbiddenError("Unauthorized access to delivery record (ID mismatch)")
        if session.status != SessionStatus.IN_PROGRESS.value:
            raise InvalidStateError("Practice session is not active")

        if self._gateway.find_attempt(session_id, delivery.question_id) is not None:
            logger.warning(
                f"Question {delivery.question_id} already answered in session {session_id}"
            )
            raise ConflictError("Question already answered in this session")

        question = self._gateway.get_question(delivery.question_id)
        if question is None:
            raise NotFoundError("Delivered question no longer exists")

        is_correct = answers_match(answer, question.correct_answer)

        profile = self._gateway.get_or_create_ability_profile(learner_id)
        item = self._estimator.item_parameters(question.difficulty, question.question_type)
        theta = self._estimator.update(profile.theta, item, is_correct)

        bonus = session.bonus_started_at is not None
        xp_awarded = self._xp_rule.award(is_correct, bonus)

        attempt = self._gateway.insert_attempt(
            QuestionAttempt(
                learner_id=learner_id,
                question_id=question.id,
                session_id=session_id,
                delivery_id=delivery.delivery_id,
                subject_id=question.subject_id,
                chapter_id=question.chapter_id,
                topic_id=question.topic_id,
                subtopic_id=question.subtopic_id,
                is_correct=is_correct,
                time_taken_seconds=float(time_taken_seconds),
                confidence_level=confidence.value if confidence else None,
                theta_before=theta.theta_before,
                theta_after=theta.theta_after,
                xp_awarded=xp_awarded,
                bonus=bonus,
                attempt_source=f"practice:{session_id}",
                completed_at=now,
            )
        )

        profile.theta = theta.theta_after
        profile.xp = (profile.xp or 0) + xp_awarded
        profile.attempt_count = (profile.attempt_count or 0) + 1

        mastery = self._scheduler.record_attempt(
            learner_id,
            question,
            is_correct,
            float(time_taken_seconds),
            confidence,
            now,
        )

        self._gateway.increment_session_counters(session_id, is_correct)
        if not bonus and self._gateway.session_xp(session_id) >= session.xp_goal:
            if self._gateway.start_bonus(session_id, now):
                logger.info(f"XP goal reached in session {session_id}; bonus round started")

        logger.info(
            f"Answer scored for question {question.id} in session {session_id}: "
            f"correct={is_correct}, xp={xp_awarded}, theta {theta.theta_before:.3f} -> "
            f"{theta.theta_after:.3f}"
        )

        return AnswerResult(
            is_correct=is_correct,
            xp_awarded=xp_awarded,
            attempt_id=attempt.id,
            theta=theta,
            mastery=mastery,
            bonus=bonus,
        )
