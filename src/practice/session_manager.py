"""
Session Lifecycle Manager.

Owns the practice session state machine and the delivery ledger:
- start: create an in_progress session
- next: select a question and record its delivery
- end: conditionally move in_progress -> completed and release unanswered reviews

A delivery row is the authoritative side effect of "next"; a question
counts as shown only once its delivery is written.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any

from loguru import logger

from src.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from src.db.gateway import PracticeGateway
from src.db.models import PracticeSession, Question
from src.practice.candidate_pool import CandidatePoolBuilder
from src.practice.models import (
    DeliveredQuestion,
    PracticeMode,
    SessionStatus,
    SessionSummary,
    Strategy,
    mix_for,
)
from src.practice.scheduler import MasteryScheduler
from src.practice.selector import QuestionSelector
from src.practice.validation import require_fields, require_positive_number


def present_question(question: Question) -> dict[str, Any]:
    """Client-facing view of a question. The answer key is withheld."""
    return {
        "id": question.id,
        "subject_id": question.subject_id,
        "chapter_id": question.chapter_id,
        "topic_id": question.topic_id,
        "subtopic_id": question.subtopic_id,
        "question_text": question.question_text,
        "question_type": question.question_type,
        "difficulty": question.difficulty,
        "options": question.options,
        "image_url": question.image_url,
    }


class SessionManager:
    """Create, advance and close practice sessions."""

    def __init__(
        self,
        gateway: PracticeGateway,
        pool_builder: CandidatePoolBuilder,
        selector: QuestionSelector,
        scheduler: MasteryScheduler,
        mix_batch_size: int = 10,
    ):
        self._gateway = gateway
        self._pool_builder = pool_builder
        self._selector = selector
        self._scheduler = scheduler
        self._mix_batch_size = mix_batch_size

    # ========================================
    # Lifecycle
    # ========================================

    def start(
        self,
        learner_id: str,
        exam_id: str,
        subject_id: str,
        mode: str,
        xp_goal: int,
        now: datetime,
    ) -> PracticeSession:
        """
        Create a new in_progress session.

        Raises:
            InvalidArgumentError: Missing fields, unknown mode or xp_goal <= 0
        """
        require_fields(
            learner_id=learner_id,
            exam_id=exam_id,
            subject_id=subject_id,
            mode=mode,
            xp_goal=xp_goal,
        )
        require_positive_number("xp_goal", xp_goal)
        practice_mode = PracticeMode.parse(mode)

        session = self._gateway.create_session(
            learner_id=learner_id,
            exam_id=exam_id,
            subject_id=subject_id,
            mode=practice_mode.value,
            xp_goal=int(xp_goal),
            start_time=now,
        )
        logger.info(
            f"Practice session {session.id} created for learner {learner_id} "
            f"({practice_mode.value}, subject {subject_id}, xp goal {xp_goal})"
        )
        return session

    def end(self, learner_id: str, session_id: str, now: datetime) -> None:
        """
        Complete a session.

        Raises:
            NotFoundError: No such session
            ConflictError: Already completed or owned by someone else
        """
        require_fields(learner_id=learner_id, session_id=session_id)

        if self._gateway.complete_session(session_id, learner_id, now):
            self._scheduler.release_unanswered(learner_id, session_id)
            logger.info(f"Practice session {session_id} ended for learner {learner_id}")
            return

        if self._gateway.get_session(session_id) is None:
            logger.warning(f"End requested for unknown session {session_id}")
            raise NotFoundError("Session not found")
        logger.warning(f"Session {session_id} already ended or belongs to another learner")
        raise ConflictError("Session already ended or belongs to another learner")

    def load_active(self, learner_id: str, session_id: str) -> PracticeSession:
        """
        Fetch a session the learner owns and can still practice in.

        Raises:
            NotFoundError: No such session
            ForbiddenError: Owned by another learner
            InvalidStateError: Not in progress
        """
        session = self._gateway.get_session(session_id)
        if session is None:
            raise NotFoundError("Practice session not found")
        if session.learner_id != learner_id:
            logger.warning(f"Learner {learner_id} tried to use session {session_id} of another learner")
            raise ForbiddenError("Session belongs to a different learner")
        if session.status != SessionStatus.IN_PROGRESS.value:
            raise InvalidStateError("Practice session is not active")
        return session

    # ========================================
    # Delivery
    # ========================================

    def next_question(self, learner_id: str, session_id: str, now: datetime) -> DeliveredQuestion:
        """
        Select the next question and record its delivery.

        Raises:
            NotFoundError / ForbiddenError / InvalidStateError: Session checks
            NoQuestionsAvailableError: Nothing left to deliver
        """
        require_fields(learner_id=learner_id, session_id=session_id)
        session = self.load_active(learner_id, session_id)

        pool = self._pool_builder.build(learner_id, session, now)
        targets = mix_for(session.mode)
        candidate = self._selector.select(pool, targets, self._batch_counts(session.id))

        delivery = self._gateway.insert_delivery(
            session_id=session.id,
            question_id=candidate.question_id,
            strategy=candidate.strategy.value,
            delivered_at=now,
        )
        if candidate.queue_item_id is not None:
            self._scheduler.mark_shown(candidate.queue_item_id, now)

        logger.info(
            f"Delivered question {candidate.question_id} ({candidate.strategy.value}) "
            f"in session {session.id} as {delivery.delivery_id}"
        )

        return DeliveredQuestion(
            delivery_id=delivery.delivery_id,
            question=present_question(candidate.question),
            strategy=candidate.strategy,
            xp_so_far=self._gateway.session_xp(session.id),
            xp_goal=session.xp_goal,
            bonus_active=session.bonus_started_at is not None,
        )

    def _batch_counts(self, session_id: str) -> Counter[Strategy]:
        """Deliveries per strategy within the current mix batch."""
        position = self._gateway.count_deliveries(session_id) % self._mix_batch_size
        if position == 0:
            return Counter()
        recent = self._gateway.recent_deliveries(session_id, position)
        return Counter(Strategy(d.strategy) for d in recent)

    # ========================================
    # Read side
    # ========================================

    def summary(self, learner_id: str, session_id: str) -> SessionSummary:
        """
        Describe a session the learner owns.

        Raises:
            NotFoundError: No such session
            ForbiddenError: Owned by another learner
        """
        require_fields(learner_id=learner_id, session_id=session_id)
        session = self._gateway.get_session(session_id)
        if session is None:
            raise NotFoundError("Practice session not found")
        if session.learner_id != learner_id:
            raise ForbiddenError("Session belongs to a different learner")

        return SessionSummary(
            session_id=session.id,
            learner_id=session.learner_id,
            subject_id=session.subject_id,
            exam_id=session.exam_id,
            mode=session.mode,
            status=session.status,
            xp_goal=session.xp_goal,
            xp_so_far=self._gateway.session_xp(session.id),
            questions_count=session.questions_count or 0,
            correct_count=session.correct_count or 0,
            bonus_active=session.bonus_started_at is not None,
            start_time=session.start_time,
            end_time=session.end_time,
            deliveries_by_strategy=self._gateway.deliveries_by_strategy(session.id),
        )
