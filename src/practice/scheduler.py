"""
Mastery & Spaced-Repetition Updater.

Implements:
- Exponential moving average of topic mastery, bounded to [0, 1]
- SM-2 scheduling per (learner, topic)
- Spaced-repetition queue upkeep (shown / retired / rescheduled)

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall

MasteryScheduler is the only writer of TopicMastery and
SpacedRepetitionItem rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from src.db.gateway import PracticeGateway
from src.db.models import Question, SpacedRepetitionItem, TopicMastery
from src.practice.models import ConfidenceLevel, MasteryUpdate, QueueStatus

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    relearn_delay_minutes: int = 10  # Lapsed topics come back this soon


@dataclass
class SM2State:
    """SM-2 scheduling state for a single topic."""

    easiness_factor: float = 2.5
    interval_days: int = 0
    repetitions: int = 0
    next_review: datetime | None = None


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each topic carries:
    - Easiness Factor (EF): How easy the topic is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive correct recalls
    """

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def review(self, state: SM2State, grade: int, now: datetime) -> SM2State:
        """
        Calculate next review based on grade.

        Args:
            state: Current SM-2 state for the topic
            grade: Recall grade (0-5)
            now: Review time

        Returns:
            New SM2State with updated interval and next_review
        """
        grade = max(0, min(5, grade))

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02)
        new_ef = max(self.config.minimum_easiness, state.easiness_factor + ef_delta)

        if grade < 3:
            # Lapse - reset and review again shortly
            return SM2State(
                easiness_factor=new_ef,
                interval_days=0,
                repetitions=0,
                next_review=now + timedelta(minutes=self.config.relearn_delay_minutes),
            )

        new_repetitions = state.repetitions + 1
        if new_repetitions == 1:
            new_interval = self.config.first_interval
        elif new_repetitions == 2:
            new_interval = self.config.second_interval
        else:
            new_interval = max(1, round(max(state.interval_days, 1) * new_ef))

        return SM2State(
            easiness_factor=new_ef,
            interval_days=new_interval,
            repetitions=new_repetitions,
            next_review=now + timedelta(days=new_interval),
        )

    @staticmethod
    def grade_from_response(
        is_correct: bool,
        time_taken_seconds: float,
        expected_seconds: float = 30.0,
        confidence: ConfidenceLevel | None = None,
    ) -> int:
        """
        Convert a response to an SM-2 grade.

        Args:
            is_correct: Whether the answer was correct
            time_taken_seconds: Time taken to respond
            expected_seconds: Reference response time
            confidence: Self-reported confidence, if given

        Returns:
            Grade 0-5
        """
        if not is_correct:
            if time_taken_seconds < expected_seconds * 0.5:
                grade = 2  # Quick wrong = almost knew it
            elif time_taken_seconds < expected_seconds:
                grade = 1  # Wrong but remembered when shown
            else:
                grade = 0  # Complete blackout
            if confidence is ConfidenceLevel.HIGH:
                grade -= 1  # Confidently wrong is a deeper miss
            return max(0, grade)

        if time_taken_seconds < expected_seconds * 0.5:
            grade = 5  # Quick and correct = perfect recall
        elif time_taken_seconds < expected_seconds:
            grade = 4  # Correct with some hesitation
        else:
            grade = 3  # Correct but struggled
        if confidence is ConfidenceLevel.LOW:
            grade -= 1
        return max(3, grade)


# =============================================================================
# Mastery
# =============================================================================


def update_mastery_level(current: float, is_correct: bool, smoothing: float = 0.2) -> float:
    """
    Move mastery toward 1.0 on a correct answer and toward 0.0 otherwise.

    The result is always within [0, 1].
    """
    current = max(0.0, min(1.0, float(current)))
    smoothing = max(0.0, min(1.0, smoothing))
    target = 1.0 if is_correct else 0.0
    return max(0.0, min(1.0, current + smoothing * (target - current)))


def queue_priority(
    mastery_level: float,
    is_correct: bool,
    overdue_days: float = 0.0,
) -> tuple[float, float]:
    """
    Priority for a scheduled review.

    Weaker topics and overdue items rank higher; a lapse adds a boost.

    Returns:
        (priority_score, priority_boost)
    """
    boost = 0.0 if is_correct else 0.5
    overdue = min(1.0, max(0.0, overdue_days) * 0.1)
    score = (1.0 - max(0.0, min(1.0, mastery_level))) + overdue + boost
    return round(score, 4), boost


# =============================================================================
# Updater
# =============================================================================


@dataclass
class MasteryConfig:
    """Configuration for the mastery updater."""

    smoothing: float = 0.2
    expected_response_seconds: float = 30.0


class MasteryScheduler:
    """
    Updates topic mastery and the spaced-repetition queue after attempts.

    All TopicMastery and SpacedRepetitionItem writes go through here.
    """

    def __init__(
        self,
        gateway: PracticeGateway,
        sm2: SM2Scheduler | None = None,
        config: MasteryConfig | None = None,
    ):
        self._gateway = gateway
        self._sm2 = sm2 or SM2Scheduler()
        self.config = config or MasteryConfig()

    def record_attempt(
        self,
        learner_id: str,
        question: Question,
        is_correct: bool,
        time_taken_seconds: float,
        confidence: ConfidenceLevel | None,
        now: datetime,
    ) -> MasteryUpdate:
        """
        Apply one attempt to the question's topic and reschedule the question.

        Steps:
        1. Update mastery_level (EMA, bounded)
        2. Run an SM-2 step on the topic
        3. Retire open queue items for the answered question
        4. Schedule the next review of the question
        """
        mastery = self._gateway.get_topic_mastery(learner_id, question.topic_id, for_update=True)
        if mastery is None:
            mastery = TopicMastery(
                learner_id=learner_id,
                topic_id=question.topic_id,
                mastery_level=0.0,
                ease_factor=self._sm2.config.initial_easiness,
                repetition_count=0,
                interval_days=0,
            )

        mastery_before = float(mastery.mastery_level or 0.0)
        mastery_after = update_mastery_level(mastery_before, is_correct, self.config.smoothing)

        grade = self._sm2.grade_from_response(
            is_correct,
            time_taken_seconds,
            self.config.expected_response_seconds,
            confidence,
        )
        state = self._sm2.review(
            SM2State(
                easiness_factor=float(mastery.ease_factor or self._sm2.config.initial_easiness),
                interval_days=int(mastery.interval_days or 0),
                repetitions=int(mastery.repetition_count or 0),
                next_review=mastery.next_review_date,
            ),
            grade,
            now,
        )

        mastery.mastery_level = mastery_after
        mastery.ease_factor = state.easiness_factor
        mastery.repetition_count = state.repetitions
        mastery.interval_days = state.interval_days
        mastery.next_review_date = state.next_review
        mastery.last_practiced = now
        self._gateway.save_topic_mastery(mastery)

        open_item = self._gateway.open_queue_item(learner_id, question.id)
        overdue_days = 0.0
        if open_item is not None and open_item.scheduled_for < now:
            overdue_days = (now - open_item.scheduled_for).total_seconds() / 86400

        retired = self._gateway.retire_queue_items(learner_id, question.id, is_correct, now)
        item = self._schedule_review(
            learner_id, question, mastery_after, is_correct, state, overdue_days, now
        )

        logger.debug(
            f"Topic {question.topic_id} for {learner_id}: mastery {mastery_before:.3f} -> "
            f"{mastery_after:.3f}, grade {grade}, next review {state.next_review} "
            f"(retired {retired} queue item(s))"
        )

        return MasteryUpdate(
            topic_id=question.topic_id,
            mastery_before=mastery_before,
            mastery_after=mastery_after,
            grade=grade,
            repetition_count=state.repetitions,
            ease_factor=state.easiness_factor,
            interval_days=state.interval_days,
            next_review_date=state.next_review,
            priority_score=item.priority_score,
        )

    def mark_shown(self, queue_item_id: str, now: datetime) -> bool:
        """Mark a pending queue item as delivered."""
        return self._gateway.mark_queue_item_shown(queue_item_id, now)

    def release_unanswered(self, learner_id: str, session_id: str) -> int:
        """
        Put reviews a session showed but never answered back in the queue.

        They return to pending with their original due date, so the next
        session picks them up as due reviews.
        """
        question_ids = self._gateway.unanswered_question_ids(session_id)
        released = self._gateway.reopen_shown_items(learner_id, question_ids)
        if released:
            logger.debug(f"Released {released} unanswered review(s) from session {session_id}")
        return released

    def _schedule_review(
        self,
        learner_id: str,
        question: Question,
        mastery_level: float,
        is_correct: bool,
        state: SM2State,
        overdue_days: float,
        now: datetime,
    ) -> SpacedRepetitionItem:
        """Queue a fresh pending review; earlier items for the question are already retired."""
        score, boost = queue_priority(mastery_level, is_correct, overdue_days)
        item = SpacedRepetitionItem(
            learner_id=learner_id,
            question_id=question.id,
            subject_id=question.subject_id,
            topic_id=question.topic_id,
            status=QueueStatus.PENDING.value,
            scheduled_for=state.next_review,
            priority_score=score,
            priority_boost=boost,
            recommendation_reason="scheduled_review" if is_correct else "incorrect_answer",
            recommended_at=now,
        )
        return self._gateway.save_queue_item(item)
