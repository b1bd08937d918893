"""
Persistence Gateway for the practice engine.

Typed read/write operations over a single SQLAlchemy Session. The engine
only touches the database through this class; it does not commit on its
own - transaction boundaries belong to the caller (see PracticeEngine).

Usage:
    from src.db.gateway import PracticeGateway

    gateway = PracticeGateway(session)
    practice_session = gateway.get_session(session_id)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import Float, case, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.errors import ConflictError
from src.db.models import (
    AbilityProfile,
    PracticeDelivery,
    PracticeSession,
    Question,
    QuestionAttempt,
    SpacedRepetitionItem,
    TopicMastery,
)
from src.db.models.practice import QueueStatus, SessionStatus

NUMERIC_DIFFICULTY = r"^\s*[0-9]*\.?[0-9]+\s*$"


def _hard_difficulty(threshold: float):
    """SQL condition for the "Hard" label or a numeric difficulty >= threshold."""
    label = func.lower(func.trim(Question.difficulty))
    numeric = case(
        (
            Question.difficulty.regexp_match(NUMERIC_DIFFICULTY),
            cast(func.trim(Question.difficulty), Float),
        ),
        else_=None,
    )
    return or_(label == "hard", numeric >= threshold)


class PracticeGateway:
    """Data access for sessions, deliveries, questions, attempts and learner state."""

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # ========================================
    # Transactions
    # ========================================

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()

    # ========================================
    # Practice Sessions
    # ========================================

    def create_session(
        self,
        learner_id: str,
        exam_id: str,
        subject_id: str,
        mode: str,
        xp_goal: int,
        start_time: datetime,
    ) -> PracticeSession:
        practice_session = PracticeSession(
            learner_id=learner_id,
            exam_id=exam_id,
            subject_id=subject_id,
            mode=mode,
            xp_goal=xp_goal,
            status=SessionStatus.IN_PROGRESS.value,
            start_time=start_time,
            questions_count=0,
            correct_count=0,
        )
        self._session.add(practice_session)
        self._session.flush()
        return practice_session

    def get_session(self, session_id: str) -> PracticeSession | None:
        return self._session.get(PracticeSession, session_id)

    def complete_session(self, session_id: str, learner_id: str, end_time: datetime) -> bool:
        """
        Conditionally finalize a session.

        Matches id, owner and current status in one UPDATE so that only one
        of several concurrent callers can win.

        Returns:
            True if this call moved the session to completed.
        """
        result = self._session.execute(
            update(PracticeSession)
            .where(
                PracticeSession.id == session_id,
                PracticeSession.learner_id == learner_id,
                PracticeSession.status == SessionStatus.IN_PROGRESS.value,
            )
            .values(status=SessionStatus.COMPLETED.value, end_time=end_time)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def start_bonus(self, session_id: str, started_at: datetime) -> bool:
        """Set bonus_started_at once; later calls are no-ops."""
        result = self._session.execute(
            update(PracticeSession)
            .where(
                PracticeSession.id == session_id,
                PracticeSession.bonus_started_at.is_(None),
            )
            .values(bonus_started_at=started_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def increment_session_counters(self, session_id: str, is_correct: bool) -> None:
        self._session.execute(
            update(PracticeSession)
            .where(PracticeSession.id == session_id)
            .values(
                questions_count=PracticeSession.questions_count + 1,
                correct_count=PracticeSession.correct_count + (1 if is_correct else 0),
            )
            .execution_options(synchronize_session="fetch")
        )

    # ========================================
    # Delivery Ledger
    # ========================================

    def insert_delivery(
        self,
        session_id: str,
        question_id: str,
        strategy: str,
        delivered_at: datetime,
    ) -> PracticeDelivery:
        """
        Record a delivery under a savepoint.

        Raises:
            ConflictError: The question was already delivered in this session.
        """
        delivery = PracticeDelivery(
            session_id=session_id,
            question_id=question_id,
            strategy=strategy,
            delivered_at=delivered_at,
        )
        try:
            with self._session.begin_nested():
                self._session.add(delivery)
                self._session.flush()
        except IntegrityError as exc:
            logger.warning(f"Duplicate delivery for session {session_id} question {question_id}")
            raise ConflictError("Question already delivered in this session") from exc
        return delivery

    def get_delivery(self, delivery_id: str) -> PracticeDelivery | None:
        return self._session.get(PracticeDelivery, delivery_id)

    def delivered_question_ids(self, session_id: str) -> set[str]:
        rows = self._session.scalars(
            select(PracticeDelivery.question_id).where(PracticeDelivery.session_id == session_id)
        )
        return set(rows)

    def unanswered_question_ids(self, session_id: str) -> set[str]:
        """Questions delivered in a session that have no attempt there."""
        answered = select(QuestionAttempt.question_id).where(
            QuestionAttempt.session_id == session_id
        )
        rows = self._session.scalars(
            select(PracticeDelivery.question_id).where(
                PracticeDelivery.session_id == session_id,
                PracticeDelivery.question_id.not_in(answered),
            )
        )
        return set(rows)

    def recent_deliveries(self, session_id: str, limit: int) -> list[PracticeDelivery]:
        """Most recent deliveries first."""
        return list(
            self._session.scalars(
                select(PracticeDelivery)
                .where(PracticeDelivery.session_id == session_id)
                .order_by(PracticeDelivery.delivered_at.desc())
                .limit(limit)
            )
        )

    def count_deliveries(self, session_id: str) -> int:
        return self._session.scalar(
            select(func.count())
            .select_from(PracticeDelivery)
            .where(PracticeDelivery.session_id == session_id)
        ) or 0

    def deliveries_by_strategy(self, session_id: str) -> dict[str, int]:
        rows = self._session.execute(
            select(PracticeDelivery.strategy, func.count())
            .where(PracticeDelivery.session_id == session_id)
            .group_by(PracticeDelivery.strategy)
        )
        return {strategy: count for strategy, count in rows}

    # ========================================
    # Questions
    # ========================================

    def get_question(self, question_id: str) -> Question | None:
        return self._session.get(Question, question_id)

    def get_questions(self, question_ids: Iterable[str]) -> dict[str, Question]:
        ids = list(question_ids)
        if not ids:
            return {}
        rows = self._session.scalars(select(Question).where(Question.id.in_(ids)))
        return {q.id: q for q in rows}

    def questions_for_subject(
        self,
        subject_id: str,
        exclude_ids: Iterable[str] = (),
        topic_ids: Iterable[str] | None = None,
        limit: int | None = None,
        shuffle: bool = False,
        hard_threshold: float | None = None,
    ) -> list[Question]:
        """
        Questions in a subject, optionally restricted to topics.

        Args:
            subject_id: Subject to draw from
            exclude_ids: Question ids to leave out
            topic_ids: Only these topics (None means any topic)
            limit: Maximum rows
            shuffle: Random order instead of id order
            hard_threshold: Only hard questions: the "Hard" label or a
                numeric difficulty at or above this value
        """
        stmt = select(Question).where(Question.subject_id == subject_id)
        excluded = list(exclude_ids)
        if excluded:
            stmt = stmt.where(Question.id.not_in(excluded))
        if topic_ids is not None:
            topics = list(topic_ids)
            if not topics:
                return []
            stmt = stmt.where(Question.topic_id.in_(topics))
        if hard_threshold is not None:
            stmt = stmt.where(_hard_difficulty(hard_threshold))
        stmt = stmt.order_by(func.random() if shuffle else Question.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt))

    def count_questions(self, subject_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(Question)
        if subject_id is not None:
            stmt = stmt.where(Question.subject_id == subject_id)
        return self._session.scalar(stmt) or 0

    def add_questions(self, questions: Iterable[dict[str, Any]]) -> int:
        count = 0
        for data in questions:
            self._session.merge(Question(**data))
            count += 1
        self._session.flush()
        return count

    # ========================================
    # Attempts
    # ========================================

    def find_attempt(self, session_id: str, question_id: str) -> QuestionAttempt | None:
        return self._session.scalar(
            select(QuestionAttempt).where(
                QuestionAttempt.session_id == session_id,
                QuestionAttempt.question_id == question_id,
            )
        )

    def insert_attempt(self, attempt: QuestionAttempt) -> QuestionAttempt:
        """
        Insert an attempt under a savepoint.

        Raises:
            ConflictError: An attempt for (session_id, question_id) already exists.
        """
        try:
            with self._session.begin_nested():
                self._session.add(attempt)
                self._session.flush()
        except IntegrityError as exc:
            logger.warning(
                f"Duplicate attempt for session {attempt.session_id} question {attempt.question_id}"
            )
            raise ConflictError("Question already answered in this session") from exc
        return attempt

    def attempted_question_ids(self, learner_id: str, subject_id: str) -> set[str]:
        rows = self._session.scalars(
            select(QuestionAttempt.question_id).where(
                QuestionAttempt.learner_id == learner_id,
                QuestionAttempt.subject_id == subject_id,
            )
        )
        return set(rows)

    def session_attempts(self, session_id: str) -> list[QuestionAttempt]:
        return list(
            self._session.scalars(
                select(QuestionAttempt)
                .where(QuestionAttempt.session_id == session_id)
                .order_by(QuestionAttempt.completed_at)
            )
        )

    def session_xp(self, session_id: str) -> int:
        total = self._session.scalar(
            select(func.coalesce(func.sum(QuestionAttempt.xp_awarded), 0)).where(
                QuestionAttempt.session_id == session_id
            )
        )
        return int(total or 0)

    # ========================================
    # Topic Mastery
    # ========================================

    def get_topic_mastery(
        self, learner_id: str, topic_id: str, for_update: bool = False
    ) -> TopicMastery | None:
        stmt = select(TopicMastery).where(
            TopicMastery.learner_id == learner_id,
            TopicMastery.topic_id == topic_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.scalar(stmt)

    def learner_topic_mastery(self, learner_id: str) -> list[TopicMastery]:
        return list(
            self._session.scalars(
                select(TopicMastery)
                .where(TopicMastery.learner_id == learner_id)
                .order_by(TopicMastery.mastery_level)
            )
        )

    def save_topic_mastery(self, mastery: TopicMastery) -> TopicMastery:
        self._session.add(mastery)
        self._session.flush()
        return mastery

    # ========================================
    # Spaced-Repetition Queue
    # ========================================

    def due_queue_items(
        self,
        learner_id: str,
        subject_id: str,
        due_before: datetime,
        due_after: datetime | None = None,
        exclude_question_ids: Iterable[str] = (),
        limit: int | None = None,
    ) -> list[SpacedRepetitionItem]:
        """
        Pending queue items in a due-date window.

        Ordered by scheduled_for ascending, then priority_score descending.
        Includes items with scheduled_for <= due_before and, when due_after
        is given, scheduled_for > due_after.
        """
        stmt = select(SpacedRepetitionItem).where(
            SpacedRepetitionItem.learner_id == learner_id,
            SpacedRepetitionItem.subject_id == subject_id,
            SpacedRepetitionItem.status == QueueStatus.PENDING.value,
            SpacedRepetitionItem.scheduled_for <= due_before,
        )
        if due_after is not None:
            stmt = stmt.where(SpacedRepetitionItem.scheduled_for > due_after)
        excluded = list(exclude_question_ids)
        if excluded:
            stmt = stmt.where(SpacedRepetitionItem.question_id.not_in(excluded))
        stmt = stmt.order_by(
            SpacedRepetitionItem.scheduled_for.asc(),
            SpacedRepetitionItem.priority_score.desc(),
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt))

    def mark_queue_item_shown(self, item_id: str, shown_at: datetime) -> bool:
        result = self._session.execute(
            update(SpacedRepetitionItem)
            .where(
                SpacedRepetitionItem.id == item_id,
                SpacedRepetitionItem.status == QueueStatus.PENDING.value,
            )
            .values(status=QueueStatus.SHOWN.value, shown_at=shown_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def reopen_shown_items(self, learner_id: str, question_ids: Iterable[str]) -> int:
        """Return shown items for these questions to pending, keeping their due dates."""
        ids = list(question_ids)
        if not ids:
            return 0
        result = self._session.execute(
            update(SpacedRepetitionItem)
            .where(
                SpacedRepetitionItem.learner_id == learner_id,
                SpacedRepetitionItem.question_id.in_(ids),
                SpacedRepetitionItem.status == QueueStatus.SHOWN.value,
            )
            .values(status=QueueStatus.PENDING.value, shown_at=None)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def retire_queue_items(
        self,
        learner_id: str,
        question_id: str,
        is_correct: bool,
        attempted_at: datetime,
    ) -> int:
        """Retire every open (pending or shown) item for a learner/question."""
        result = self._session.execute(
            update(SpacedRepetitionItem)
            .where(
                SpacedRepetitionItem.learner_id == learner_id,
                SpacedRepetitionItem.question_id == question_id,
                SpacedRepetitionItem.status.in_(
                    [QueueStatus.PENDING.value, QueueStatus.SHOWN.value]
                ),
            )
            .values(
                status=QueueStatus.RETIRED.value,
                attempted_at=attempted_at,
                is_correct=is_correct,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def open_queue_item(self, learner_id: str, question_id: str) -> SpacedRepetitionItem | None:
        """Earliest pending or shown item for a learner/question."""
        return self._session.scalar(
            select(SpacedRepetitionItem)
            .where(
                SpacedRepetitionItem.learner_id == learner_id,
                SpacedRepetitionItem.question_id == question_id,
                SpacedRepetitionItem.status.in_(
                    [QueueStatus.PENDING.value, QueueStatus.SHOWN.value]
                ),
            )
            .order_by(SpacedRepetitionItem.scheduled_for.asc())
            .limit(1)
        )

    def save_queue_item(self, item: SpacedRepetitionItem) -> SpacedRepetitionItem:
        self._session.add(item)
        self._session.flush()
        return item

    def learner_queue(
        self,
        learner_id: str,
        subject_id: str | None = None,
        status: QueueStatus = QueueStatus.PENDING,
        limit: int = 50,
    ) -> list[SpacedRepetitionItem]:
        stmt = select(SpacedRepetitionItem).where(
            SpacedRepetitionItem.learner_id == learner_id,
            SpacedRepetitionItem.status == status.value,
        )
        if subject_id is not None:
            stmt = stmt.where(SpacedRepetitionItem.subject_id == subject_id)
        stmt = stmt.order_by(
            SpacedRepetitionItem.scheduled_for.asc(),
            SpacedRepetitionItem.priority_score.desc(),
        ).limit(limit)
        return list(self._session.scalars(stmt))

    # ========================================
    # Ability Profile
    # ========================================

    def get_ability_profile(self, learner_id: str) -> AbilityProfile | None:
        return self._session.get(AbilityProfile, learner_id)

    def get_or_create_ability_profile(self, learner_id: str) -> AbilityProfile:
        """
        Fetch the learner's profile, creating it with theta=0.0 if missing.

        A concurrent creator winning the insert is handled by re-reading.
        """
        profile = self._session.scalar(
            select(AbilityProfile).where(AbilityProfile.learner_id == learner_id).with_for_update()
        )
        if profile is not None:
            return profile

        try:
            with self._session.begin_nested():
                profile = AbilityProfile(learner_id=learner_id, theta=0.0, xp=0, attempt_count=0)
                self._session.add(profile)
                self._session.flush()
        except IntegrityError:
            logger.debug(f"Ability profile for {learner_id} created concurrently; re-reading")
            profile = self._session.scalar(
                select(AbilityProfile).where(AbilityProfile.learner_id == learner_id)
            )
            if profile is None:
                raise
        return profile
