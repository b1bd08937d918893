"""
Question Selector.

Picks exactly one candidate from the pool. Buckets are walked in strategy
priority order (SRQ due now > weak new / hard mastered > eval > SRQ due
soon); the first non-empty bucket whose mode target is not yet met in the
current batch wins, and a candidate is drawn from it uniformly at random.
If every non-empty bucket has met its target, the highest-priority
non-empty bucket is used.
"""

from __future__ import annotations

import random
from collections.abc import Mapping

from src.core.errors import NoQuestionsAvailableError
from src.practice.candidate_pool import CandidatePool
from src.practice.models import STRATEGY_PRIORITY, Candidate, Strategy


class QuestionSelector:
    """Strategy-priority walk with a uniform draw inside the chosen bucket."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def choose_strategy(
        self,
        pool: CandidatePool,
        targets: Mapping[Strategy, int],
        batch_counts: Mapping[Strategy, int] | None = None,
    ) -> Strategy:
        """
        Decide which bucket the next question comes from.

        Args:
            pool: Candidate pool partitioned by strategy
            targets: Mode mix (deliveries per strategy per batch)
            batch_counts: Deliveries per strategy so far in the current batch
        """
        batch_counts = batch_counts or {}
        non_empty = [s for s in STRATEGY_PRIORITY if pool.bucket(s)]
        if not non_empty:
            raise NoQuestionsAvailableError("Candidate pool is empty")

        for strategy in non_empty:
            if batch_counts.get(strategy, 0) < targets.get(strategy, 0):
                return strategy
        return non_empty[0]

    def select(
        self,
        pool: CandidatePool,
        targets: Mapping[Strategy, int],
        batch_counts: Mapping[Strategy, int] | None = None,
    ) -> Candidate:
        """Pick one candidate."""
        strategy = self.choose_strategy(pool, targets, batch_counts)
        return self.rank(pool.bucket(strategy))

    def rank(self, bucket: list[Candidate]) -> Candidate:
        """Draw one candidate from a bucket. Override for a weighted ranking."""
        return self._rng.choice(bucket)
