"""
IRT Ability Estimator.

Maintains one scalar ability estimate (theta) per learner using the
3-parameter logistic model:

    P(theta) = c + (1 - c) / (1 + exp(-D * a * (theta - b)))

and a single gradient step per observed response:

    theta' = theta + lr * (observed - P(theta))

Item parameters:
- a (discrimination): fixed constant
- b (difficulty): mapped from the question's difficulty label
- c (guessing): 0.25 for multiple choice, 0 for free response / conceptual
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from src.practice.models import ThetaUpdate

# Difficulty label -> IRT b
DIFFICULTY_B: dict[str, float] = {
    "easy": -1.0,
    "medium": 0.0,
    "hard": 1.0,
    "conceptual": 0.5,
}

# Question types scored without a chance of guessing
FREE_RESPONSE_TYPES = frozenset({"free_response", "numeric", "short_answer", "essay"})


def parse_difficulty(difficulty: str | None) -> float:
    """
    Convert a difficulty label to a 0-1 scale.

    Labels map to Easy=0.2, Medium=0.5, Hard=0.8, Conceptual=0.4. Numeric
    strings in [0, 1] pass through. Anything else is treated as medium.
    """
    if not difficulty:
        return 0.5
    label = difficulty.strip().lower()
    named = {"easy": 0.2, "medium": 0.5, "hard": 0.8, "conceptual": 0.4}
    if label in named:
        return named[label]
    try:
        value = float(label)
    except ValueError:
        return 0.5
    if 0.0 <= value <= 1.0:
        return value
    return 0.5


@dataclass(frozen=True)
class ItemParameters:
    """3PL parameters for one question."""

    a: float = 1.0
    b: float = 0.0
    c: float = 0.25

    @classmethod
    def for_question(
        cls,
        difficulty: str | None,
        question_type: str | None = "mcq",
        discrimination: float = 1.0,
        mcq_guessing: float = 0.25,
    ) -> ItemParameters:
        """
        Derive item parameters from a question's difficulty and type.

        Args:
            difficulty: Label ('Easy', 'Medium', 'Hard', 'Conceptual') or '0.0'-'1.0'
            question_type: 'mcq' allows guessing; free-response types do not
            discrimination: Fixed discrimination a
            mcq_guessing: Guessing parameter for multiple choice
        """
        label = (difficulty or "").strip().lower()
        if label in DIFFICULTY_B:
            b = DIFFICULTY_B[label]
        else:
            # Numeric 0-1 difficulty spread over [-1, 1]
            b = (parse_difficulty(difficulty) - 0.5) * 2.0

        c = mcq_guessing
        if label == "conceptual" or (question_type or "").lower() in FREE_RESPONSE_TYPES:
            c = 0.0
        return cls(a=discrimination, b=b, c=c)


@dataclass
class AbilityConfig:
    """Configuration for the ability estimator."""

    learning_rate: float = 0.1
    scaling: float = 1.7
    discrimination: float = 1.0
    mcq_guessing: float = 0.25


class AbilityEstimator:
    """
    Stateless 3PL theta updater.

    Holds only configuration; the current theta is passed in and the new
    value returned, so persistence stays with the caller.
    """

    def __init__(self, config: AbilityConfig | None = None):
        self.config = config or AbilityConfig()

    def item_parameters(self, difficulty: str | None, question_type: str | None) -> ItemParameters:
        return ItemParameters.for_question(
            difficulty,
            question_type,
            discrimination=self.config.discrimination,
            mcq_guessing=self.config.mcq_guessing,
        )

    def probability(self, theta: float, item: ItemParameters) -> float:
        """Probability of a correct response at the given theta."""
        exponent = -self.config.scaling * item.a * (theta - item.b)
        # Clamp to keep exp() finite for extreme thetas
        exponent = max(-500.0, min(500.0, exponent))
        return item.c + (1.0 - item.c) / (1.0 + math.exp(exponent))

    def update(self, theta: float | None, item: ItemParameters, is_correct: bool) -> ThetaUpdate:
        """
        Apply one gradient step for an observed response.

        A missing theta (learner without a profile) starts at 0.0.
        """
        theta_before = 0.0 if theta is None else float(theta)
        p = self.probability(theta_before, item)
        observed = 1.0 if is_correct else 0.0
        theta_after = theta_before + self.config.learning_rate * (observed - p)
        return ThetaUpdate(theta_before=theta_before, theta_after=theta_after, probability=p)
