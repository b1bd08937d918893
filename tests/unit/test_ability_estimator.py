"""
Unit tests for the IRT ability estimator.

Pure math; no database.
"""

import pytest

from src.practice.ability import (
    AbilityConfig,
    AbilityEstimator,
    ItemParameters,
    parse_difficulty,
)


class TestItemParameters:
    def test_labels_map_to_difficulty(self):
        assert ItemParameters.for_question("Easy").b == -1.0
        assert ItemParameters.for_question("medium").b == 0.0
        assert ItemParameters.for_question("HARD").b == 1.0
        assert ItemParameters.for_question("Conceptual").b == 0.5

    def test_numeric_difficulty_spreads_over_unit_range(self):
        assert ItemParameters.for_question("0.8").b == pytest.approx(0.6)
        assert ItemParameters.for_question("0").b == pytest.approx(-1.0)
        assert ItemParameters.for_question("1.0").b == pytest.approx(1.0)

    def test_unknown_or_missing_difficulty_is_medium(self):
        assert ItemParameters.for_question(None).b == 0.0
        assert ItemParameters.for_question("impossible").b == 0.0
        assert ItemParameters.for_question("7.5").b == 0.0

    def test_guessing_only_for_multiple_choice(self):
        assert ItemParameters.for_question("Medium", "mcq").c == 0.25
        assert ItemParameters.for_question("Medium", "free_response").c == 0.0
        assert ItemParameters.for_question("Conceptual", "mcq").c == 0.0


class TestProbability:
    def test_at_item_difficulty_halfway_above_guessing(self):
        estimator = AbilityEstimator()
        item = ItemParameters(a=1.0, b=0.0, c=0.25)
        assert estimator.probability(0.0, item) == pytest.approx(0.625)

    def test_free_response_at_difficulty_is_one_half(self):
        estimator = AbilityEstimator()
        assert estimator.probability(1.0, ItemParameters(a=1.0, b=1.0, c=0.0)) == pytest.approx(0.5)

    def test_extreme_theta_stays_finite(self):
        estimator = AbilityEstimator()
        item = ItemParameters()
        assert estimator.probability(1e6, item) == pytest.approx(1.0)
        assert estimator.probability(-1e6, item) == pytest.approx(0.25)


class TestThetaUpdate:
    def test_missing_theta_starts_at_zero(self):
        update = AbilityEstimator().update(None, ItemParameters(), True)
        assert update.theta_before == 0.0
        assert update.theta_after > 0.0

    def test_gradient_step(self):
        estimator = AbilityEstimator(AbilityConfig(learning_rate=0.1))
        update = estimator.update(0.0, ItemParameters(a=1.0, b=0.0, c=0.25), True)
        assert update.probability == pytest.approx(0.625)
        assert update.theta_after == pytest.approx(0.1 * (1 - 0.625))
        assert update.delta == pytest.approx(update.theta_after)

    def test_correct_answers_raise_theta(self):
        estimator = AbilityEstimator()
        item = ItemParameters.for_question("Medium")
        theta = 0.0
        history = []
        for _ in range(30):
            theta = estimator.update(theta, item, True).theta_after
            history.append(theta)
        assert history == sorted(history)
        assert theta > 0.5

    def test_incorrect_answers_lower_theta(self):
        estimator = AbilityEstimator()
        item = ItemParameters.for_question("Medium")
        theta = 0.0
        for _ in range(30):
            theta = estimator.update(theta, item, False).theta_after
        assert theta < -0.5


class TestDifficultyHelpers:
    def test_parse_difficulty(self):
        assert parse_difficulty("Easy") == 0.2
        assert parse_difficulty("Hard") == 0.8
        assert parse_difficulty("0.65") == 0.65
        assert parse_difficulty("") == 0.5
        assert parse_difficulty("-3") == 0.5
