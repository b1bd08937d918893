"""
Practice Engine Models.

SQLAlchemy models for the adaptive practice loop:
- Question bank (read-only to the engine)
- Practice sessions and the delivery ledger
- Question attempts (one per session/question)
- Per-topic mastery with SM-2 state
- Spaced-repetition queue
- Learner ability profile (IRT theta)

Column types are kept portable so the same models run on PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _new_id() -> str:
    return str(uuid4())


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QueueStatus(str, Enum):
    """Spaced-repetition queue item lifecycle: pending -> shown -> retired."""

    PENDING = "pending"
    SHOWN = "shown"
    RETIRED = "retired"


class Question(Base):
    """A question from the bank. The engine never writes these."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    chapter_id: Mapped[str | None] = mapped_column(String(64))
    topic_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subtopic_id: Mapped[str | None] = mapped_column(String(64))

    question_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    question_type: Mapped[str] = mapped_column(
        String(32), default="mcq"
    )  # 'mcq', 'free_response', 'numeric'
    difficulty: Mapped[str | None] = mapped_column(
        String(32)
    )  # 'Easy', 'Medium', 'Hard', 'Conceptual' or '0.0'-'1.0'
    options: Mapped[Any | None] = mapped_column(JSON)
    correct_answer: Mapped[Any] = mapped_column(JSON, nullable=False)
    solution: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (Index("idx_questions_subject_topic", "subject_id", "topic_id"),)

    def __repr__(self) -> str:
        return f"<Question {self.id} topic={self.topic_id} difficulty={self.difficulty}>"


class PracticeSession(Base):
    """
    A practice session owned by one learner.

    Status only moves forward: 'in_progress' -> 'completed'.
    """

    __tablename__ = "practice_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    exam_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)

    mode: Mapped[str] = mapped_column(String(16), nullable=False)  # 'recall', 'refine', 'conquer'
    xp_goal: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="in_progress"
    )  # 'in_progress', 'completed'

    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime)
    bonus_started_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Progress counters
    questions_count: Mapped[int] = mapped_column(Integer, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)

    deliveries: Mapped[list[PracticeDelivery]] = relationship(back_populates="session")

    __table_args__ = (Index("idx_practice_sessions_learner_status", "learner_id", "status"),)

    def __repr__(self) -> str:
        return f"<PracticeSession {self.id} learner={self.learner_id} status={self.status}>"


class PracticeDelivery(Base):
    """
    One "question shown" event.

    The delivery id is the only ticket accepted by answer submission.
    """

    __tablename__ = "practice_deliveries"

    delivery_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("practice_sessions.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[str] = mapped_column(ForeignKey("questions.id"), nullable=False)
    strategy: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # 'srq_due_now', 'srq_due_soon', 'weak_new', 'hard_mastered', 'eval', 'fallback'
    delivered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    session: Mapped[PracticeSession] = relationship(back_populates="deliveries")
    question: Mapped[Question] = relationship()

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_delivery_session_question"),
        Index("idx_practice_deliveries_session_time", "session_id", "delivered_at"),
    )

    def __repr__(self) -> str:
        return f"<PracticeDelivery {self.delivery_id} session={self.session_id} question={self.question_id}>"


class QuestionAttempt(Base):
    """A scored answer. Exactly one per (session, question)."""

    __tablename__ = "question_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    question_id: Mapped[str] = mapped_column(ForeignKey("questions.id"), nullable=False)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("practice_sessions.id", ondelete="CASCADE"), nullable=False
    )
    delivery_id: Mapped[str | None] = mapped_column(ForeignKey("practice_deliveries.delivery_id"))

    # Question taxonomy snapshot
    subject_id: Mapped[str | None] = mapped_column(String(64))
    chapter_id: Mapped[str | None] = mapped_column(String(64))
    topic_id: Mapped[str | None] = mapped_column(String(64))
    subtopic_id: Mapped[str | None] = mapped_column(String(64))

    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    time_taken_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_level: Mapped[str | None] = mapped_column(String(16))

    theta_before: Mapped[float] = mapped_column(Float, nullable=False)
    theta_after: Mapped[float] = mapped_column(Float, nullable=False)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus: Mapped[bool] = mapped_column(Boolean, default=False)

    attempt_source: Mapped[str | None] = mapped_column(String(64))
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_attempt_session_question"),
        Index("idx_question_attempts_learner_question", "learner_id", "question_id"),
    )

    def __repr__(self) -> str:
        return f"<QuestionAttempt {self.id} question={self.question_id} correct={self.is_correct}>"


class TopicMastery(Base):
    """Per learner per topic mastery level with SM-2 scheduling state."""

    __tablename__ = "topic_mastery"

    learner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    topic_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    mastery_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # 0-1

    # SM-2 state
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    repetition_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_practiced: Mapped[datetime | None] = mapped_column(DateTime)
    next_review_date: Mapped[datetime | None] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<TopicMastery learner={self.learner_id} topic={self.topic_id} mastery={self.mastery_level:.2f}>"


class SpacedRepetitionItem(Base):
    """
    A scheduled review of one question for one learner.

    Lifecycle: 'pending' -> 'shown' (delivered) -> 'retired' (answered).
    """

    __tablename__ = "spaced_repetition_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_id: Mapped[str] = mapped_column(ForeignKey("questions.id"), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[str | None] = mapped_column(String(64))

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    priority_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    priority_boost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recommendation_reason: Mapped[str] = mapped_column(String(64), nullable=False)

    recommended_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    shown_at: Mapped[datetime | None] = mapped_column(DateTime)
    attempted_at: Mapped[datetime | None] = mapped_column(DateTime)
    is_correct: Mapped[bool | None] = mapped_column(Boolean)

    __table_args__ = (
        Index(
            "idx_srq_learner_subject_due",
            "learner_id",
            "subject_id",
            "status",
            "scheduled_for",
        ),
    )

    def __repr__(self) -> str:
        return f"<SpacedRepetitionItem {self.id} question={self.question_id} status={self.status}>"


class AbilityProfile(Base):
    """Global IRT ability estimate (theta) for a learner."""

    __tablename__ = "ability_profiles"

    learner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    theta: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<AbilityProfile learner={self.learner_id} theta={self.theta:.3f}>"
