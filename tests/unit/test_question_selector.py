"""
Unit tests for the strategy-priority question selector.

Candidates wrap transient Question objects; nothing touches a database.
"""

import random

import pytest

from src.core.errors import NoQuestionsAvailableError
from src.db.models import Question
from src.practice.candidate_pool import CandidatePool
from src.practice.models import Candidate, PracticeMode, Strategy, mix_for
from src.practice.selector import QuestionSelector


def _pool(**buckets: int) -> CandidatePool:
    """Build a pool with N candidates per strategy name."""
    pool = CandidatePool()
    for name, count in buckets.items():
        strategy = Strategy(name)
        for i in range(count):
            question = Question(id=f"{name}-{i}", subject_id="physics", topic_id="t")
            pool.add(Candidate(question=question, strategy=strategy))
    return pool


class TestStrategyPriority:
    def test_due_reviews_beat_everything(self):
        pool = _pool(srq_due_now=1, weak_new=5, eval=5)
        selector = QuestionSelector(random.Random(1))
        choice = selector.select(pool, mix_for(PracticeMode.REFINE))
        assert choice.strategy is Strategy.SRQ_DUE_NOW

    def test_weak_before_eval_in_refine(self):
        pool = _pool(weak_new=3, eval=3)
        strategy = QuestionSelector().choose_strategy(pool, mix_for("refine"))
        assert strategy is Strategy.WEAK_NEW

    def test_hard_mastered_before_eval_in_conquer(self):
        pool = _pool(hard_mastered=2, eval=3)
        strategy = QuestionSelector().choose_strategy(pool, mix_for("conquer"))
        assert strategy is Strategy.HARD_MASTERED

    def test_due_soon_after_eval_in_recall(self):
        pool = _pool(srq_due_soon=2, eval=2)
        selector = QuestionSelector()
        targets = mix_for("recall")
        assert selector.choose_strategy(pool, targets) is Strategy.EVAL
        assert selector.choose_strategy(pool, targets, {Strategy.EVAL: 3}) is Strategy.SRQ_DUE_SOON

    def test_met_target_moves_to_next_bucket(self):
        pool = _pool(srq_due_now=4, eval=4)
        strategy = QuestionSelector().choose_strategy(
            pool, mix_for("refine"), {Strategy.SRQ_DUE_NOW: 3}
        )
        assert strategy is Strategy.EVAL

    def test_all_targets_met_falls_back_to_highest_priority(self):
        pool = _pool(srq_due_now=4, eval=4)
        strategy = QuestionSelector().choose_strategy(
            pool, mix_for("refine"), {Strategy.SRQ_DUE_NOW: 3, Strategy.EVAL: 3}
        )
        assert strategy is Strategy.SRQ_DUE_NOW

    def test_zero_weight_bucket_still_used_when_alone(self):
        pool = _pool(fallback=2)
        assert QuestionSelector().choose_strategy(pool, mix_for("recall")) is Strategy.FALLBACK

    def test_empty_pool_raises(self):
        with pytest.raises(NoQuestionsAvailableError):
            QuestionSelector().select(CandidatePool(), mix_for("recall"))


class TestRanking:
    def test_draws_from_the_chosen_bucket_only(self):
        pool = _pool(weak_new=5, eval=5)
        selector = QuestionSelector(random.Random(3))
        picks = {selector.select(pool, mix_for("refine")).question_id for _ in range(50)}
        assert picks <= {f"weak_new-{i}" for i in range(5)}
        assert len(picks) > 1

    def test_pool_bookkeeping(self):
        pool = _pool(srq_due_now=2, eval=3)
        assert len(pool) == 5
        assert pool.counts() == {"srq_due_now": 2, "eval": 3}
        assert "eval-2" in pool.question_ids
        assert pool.bucket(Strategy.WEAK_NEW) == []
