"""
Candidate Pool Builder.

Assembles a deduplicated pool of eligible questions for one turn, drawn
from up to five strategies sized by the session mode's mix:

- srq_due_now:   pending queue items scheduled at or before now
- srq_due_soon:  pending queue items due within the look-ahead window
- weak_new:      unseen questions from weak topics
- hard_mastered: hard questions from mastered topics
- eval:          unseen questions from anywhere in the subject

Questions already delivered in the session are never candidates. When the
mix yields nothing, any undelivered subject question is eligible (fallback).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from src.core.errors import NoQuestionsAvailableError
from src.core.mastery import MasteryLevel
from src.db.gateway import PracticeGateway
from src.db.models import PracticeSession, Question, SpacedRepetitionItem
from src.practice.models import Candidate, PracticeMode, Strategy, mix_for


@dataclass
class PoolConfig:
    """Configuration for candidate gathering."""

    weak_threshold: float = 0.4
    strong_threshold: float = 0.75
    hard_difficulty_threshold: float = 0.7
    due_soon_hours: int = 24
    fallback_pool_size: int = 10
    srq_candidate_limit: int = 50


@dataclass
class CandidatePool:
    """Candidates partitioned by the strategy that produced them."""

    buckets: dict[Strategy, list[Candidate]] = field(default_factory=dict)

    def add(self, candidate: Candidate) -> None:
        self.buckets.setdefault(candidate.strategy, []).append(candidate)

    def bucket(self, strategy: Strategy) -> list[Candidate]:
        return self.buckets.get(strategy, [])

    @property
    def question_ids(self) -> set[str]:
        return {c.question_id for bucket in self.buckets.values() for c in bucket}

    def counts(self) -> dict[str, int]:
        return {strategy.value: len(bucket) for strategy, bucket in self.buckets.items() if bucket}

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self.buckets.values())


class CandidatePoolBuilder:
    """
    Gather question candidates for a learner's session.

    Reads only through the gateway; holds no state between calls.
    """

    def __init__(self, gateway: PracticeGateway, config: PoolConfig | None = None):
        self._gateway = gateway
        self.config = config or PoolConfig()

    def build(self, learner_id: str, session: PracticeSession, now: datetime) -> CandidatePool:
        """
        Build the candidate pool for the next delivery.

        Args:
            learner_id: Learner identifier
            session: The in-progress session
            now: Current time

        Returns:
            CandidatePool with at least one candidate

        Raises:
            NoQuestionsAvailableError: Nothing is eligible even after fallback
        """
        mode = PracticeMode.parse(session.mode)
        mix = mix_for(mode)
        subject_id = session.subject_id

        pool = CandidatePool()
        seen_ids: set[str] = set(self._gateway.delivered_question_ids(session.id))
        delivered_count = len(seen_ids)

        def add_questions(questions: list[Question], strategy: Strategy) -> int:
            added = 0
            for question in questions:
                if question.id in seen_ids:
                    continue
                pool.add(Candidate(question=question, strategy=strategy))
                seen_ids.add(question.id)
                added += 1
            return added

        def add_queue_items(items: list[SpacedRepetitionItem], strategy: Strategy) -> int:
            questions = self._gateway.get_questions(item.question_id for item in items)
            added = 0
            for item in items:
                question = questions.get(item.question_id)
                if question is None or question.id in seen_ids:
                    continue
                pool.add(Candidate(question=question, strategy=strategy, queue_item_id=item.id))
                seen_ids.add(question.id)
                added += 1
            return added

        # 1. SRQ due now
        if mix[Strategy.SRQ_DUE_NOW] > 0:
            items = self._gateway.due_queue_items(
                learner_id,
                subject_id,
                due_before=now,
                exclude_question_ids=seen_ids,
                limit=self.config.srq_candidate_limit,
            )
            n = add_queue_items(items, Strategy.SRQ_DUE_NOW)
            logger.debug(f"Fetched {n} candidates from SRQ due now")

        # 2. SRQ due soon (recall only)
        if mode is PracticeMode.RECALL and mix[Strategy.SRQ_DUE_SOON] > 0:
            items = self._gateway.due_queue_items(
                learner_id,
                subject_id,
                due_before=now + timedelta(hours=self.config.due_soon_hours),
                due_after=now,
                exclude_question_ids=seen_ids,
                limit=self.config.srq_candidate_limit,
            )
            n = add_queue_items(items, Strategy.SRQ_DUE_SOON)
            logger.debug(f"Fetched {n} candidates from SRQ due soon")

        weak_topics, strong_topics = self._partition_topics(learner_id)
        attempted: set[str] | None = None

        # 3. Weak-topic new
        if mix[Strategy.WEAK_NEW] > 0 and weak_topics:
            attempted = self._gateway.attempted_question_ids(learner_id, subject_id)
            questions = self._gateway.questions_for_subject(
                subject_id,
                exclude_ids=seen_ids | attempted,
                topic_ids=weak_topics,
                limit=mix[Strategy.WEAK_NEW] * 2,
                shuffle=True,
            )
            n = add_questions(questions, Strategy.WEAK_NEW)
            logger.debug(f"Fetched {n} candidates from weak topics {weak_topics}")

        # 4. Hard questions on mastered topics
        if mix[Strategy.HARD_MASTERED] > 0 and strong_topics:
            questions = self._gateway.questions_for_subject(
                subject_id,
                exclude_ids=seen_ids,
                topic_ids=strong_topics,
                limit=mix[Strategy.HARD_MASTERED] * 2,
                shuffle=True,
                hard_threshold=self.config.hard_difficulty_threshold,
            )
            n = add_questions(questions, Strategy.HARD_MASTERED)
            logger.debug(f"Fetched {n} candidates from hard mastered topics")

        # 5. Evaluation pool
        if mix[Strategy.EVAL] > 0:
            if attempted is None:
                attempted = self._gateway.attempted_question_ids(learner_id, subject_id)
            questions = self._gateway.questions_for_subject(
                subject_id,
                exclude_ids=seen_ids | attempted,
                limit=mix[Strategy.EVAL] * 3,
                shuffle=True,
            )
            n = add_questions(questions, Strategy.EVAL)
            logger.debug(f"Fetched {n} candidates for evaluation")

        # Fallback: any undelivered question from the subject
        if len(pool) == 0:
            logger.warning(
                f"Candidate pool empty for session {session.id} ({mode.value}); "
                "falling back to general subject pool"
            )
            questions = self._gateway.questions_for_subject(
                subject_id,
                exclude_ids=seen_ids,
                limit=self.config.fallback_pool_size,
                shuffle=True,
            )
            add_questions(questions, Strategy.FALLBACK)

        if len(pool) == 0:
            logger.error(
                f"No questions available for subject {subject_id} "
                f"({delivered_count} already delivered in session {session.id})"
            )
            raise NoQuestionsAvailableError(
                "No available questions could be found for your selection"
            )

        logger.debug(f"Candidate pool for session {session.id}: {pool.counts()}")
        return pool

    def _partition_topics(self, learner_id: str) -> tuple[list[str], list[str]]:
        """Split the learner's topics into weak and mastered lists."""
        weak: list[str] = []
        strong: list[str] = []
        for mastery in self._gateway.learner_topic_mastery(learner_id):
            level = MasteryLevel.from_score(
                float(mastery.mastery_level or 0.0),
                self.config.weak_threshold,
                self.config.strong_threshold,
            )
            if level is MasteryLevel.WEAK:
                weak.append(mastery.topic_id)
            elif level is MasteryLevel.MASTERED:
                strong.append(mastery.topic_id)
        return weak, strong
