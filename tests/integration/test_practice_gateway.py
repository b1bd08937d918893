"""
Integration tests for PracticeGateway queries and write guards.

Runs against the in-memory SQLite database from conftest.
"""

from datetime import datetime

import pytest

from src.core.errors import ConflictError
from src.db.gateway import PracticeGateway

LEARNER = "learner-1"
NOW = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture
def gateway(db_session):
    return PracticeGateway(db_session)


@pytest.fixture
def practice_session(gateway):
    session = gateway.create_session(LEARNER, "exam-1", "physics", "conquer", 50, NOW)
    gateway.commit()
    return session


class TestHardQuestionFilter:
    def test_label_and_numeric_threshold(self, gateway, add_questions):
        hard = []
        for difficulty in ("Hard", " hard ", "0.7", "0.95", "1"):
            hard += add_questions(1, topic_id="optics", difficulty=difficulty)
        for difficulty in ("0.69", "Easy", "Medium", "Conceptual", None, "tricky"):
            add_questions(1, topic_id="optics", difficulty=difficulty)

        questions = gateway.questions_for_subject(
            "physics", topic_ids=["optics"], hard_threshold=0.7
        )
        assert sorted(q.id for q in questions) == sorted(hard)

    def test_limit_applies_after_filter(self, gateway, add_questions):
        add_questions(5, topic_id="optics", difficulty="Easy")
        hard = add_questions(3, topic_id="optics", difficulty="Hard")

        questions = gateway.questions_for_subject(
            "physics", topic_ids=["optics"], hard_threshold=0.7, limit=2
        )
        assert len(questions) == 2
        assert {q.id for q in questions} <= set(hard)

    def test_respects_topics_and_exclusions(self, gateway, add_questions):
        optics = add_questions(2, topic_id="optics", difficulty="Hard")
        add_questions(2, topic_id="mechanics", difficulty="0.9")

        questions = gateway.questions_for_subject(
            "physics", exclude_ids=[optics[0]], topic_ids=["optics"], hard_threshold=0.7
        )
        assert [q.id for q in questions] == [optics[1]]


class TestDeliveryGuard:
    def test_question_delivered_once_per_session(self, gateway, practice_session, add_questions):
        question_id = add_questions(1)[0]
        gateway.insert_delivery(practice_session.id, question_id, "eval", NOW)

        with pytest.raises(ConflictError):
            gateway.insert_delivery(practice_session.id, question_id, "fallback", NOW)

        assert gateway.count_deliveries(practice_session.id) == 1
        assert gateway.delivered_question_ids(practice_session.id) == {question_id}

    def test_same_question_in_another_session(self, gateway, practice_session, add_questions):
        question_id = add_questions(1)[0]
        other = gateway.create_session(LEARNER, "exam-1", "physics", "recall", 50, NOW)
        gateway.insert_delivery(practice_session.id, question_id, "eval", NOW)
        gateway.insert_delivery(other.id, question_id, "eval", NOW)

        assert gateway.count_deliveries(practice_session.id) == 1
        assert gateway.count_deliveries(other.id) == 1


class TestUnansweredDeliveries:
    def test_only_unanswered_questions(self, practice_engine, add_questions):
        add_questions(3)
        session_id = practice_engine.start_session(LEARNER, "exam-1", "physics", "recall", 50)
        answered = practice_engine.next_question(LEARNER, session_id)
        practice_engine.submit_answer(LEARNER, session_id, answered.delivery_id, "B", 5)
        skipped = practice_engine.next_question(LEARNER, session_id)

        assert practice_engine.gateway.unanswered_question_ids(session_id) == {
            skipped.question["id"]
        }
