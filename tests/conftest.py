"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Database-backed tests run against an in-memory SQLite database built from
the ORM metadata.
"""
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from src.db.database import build_engine, init_db  # noqa: E402
from src.db.models import Question, TopicMastery  # noqa: E402
from src.practice.engine import PracticeEngine  # noqa: E402

START_TIME = datetime(2026, 3, 2, 9, 0, 0)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class AdvancingClock:
    """Deterministic clock: every reading is one step after the previous one."""

    def __init__(self, start: datetime = START_TIME, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        self.current += self.step
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def test_settings():
    """Settings with defaults, an in-memory database and no log file."""
    return Settings(database_url="sqlite://", log_file=None, _env_file=None)


@pytest.fixture
def sqlite_engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return AdvancingClock()


@pytest.fixture
def practice_engine(db_session, test_settings, clock):
    """Engine over the test session with a fixed clock and seeded randomness."""
    return PracticeEngine(db_session, test_settings, clock=clock, rng=random.Random(7))


@pytest.fixture
def add_questions(db_session):
    """
    Insert questions into the bank.

    Usage:
        ids = add_questions(5, topic_id="kinematics", difficulty="Hard")
    """
    counter = {"n": 0}

    def _add(
        count: int = 1,
        subject_id: str = "physics",
        topic_id: str = "kinematics",
        difficulty: str | None = "Medium",
        question_type: str = "mcq",
        correct_answer="B",
    ) -> list[str]:
        ids = []
        for _ in range(count):
            counter["n"] += 1
            question_id = f"{subject_id}-{topic_id}-{counter['n']:03d}"
            db_session.add(
                Question(
                    id=question_id,
                    subject_id=subject_id,
                    chapter_id=f"{subject_id}-ch1",
                    topic_id=topic_id,
                    subtopic_id=None,
                    question_text=f"Question {counter['n']} on {topic_id}",
                    question_type=question_type,
                    difficulty=difficulty,
                    options=["A", "B", "C", "D"],
                    correct_answer=correct_answer,
                    solution="Because B.",
                )
            )
            ids.append(question_id)
        db_session.commit()
        return ids

    return _add


@pytest.fixture
def set_mastery(db_session):
    """Seed a TopicMastery row for a learner."""

    def _set(learner_id: str, topic_id: str, level: float, next_review_date=None) -> None:
        db_session.add(
            TopicMastery(
                learner_id=learner_id,
                topic_id=topic_id,
                mastery_level=level,
                ease_factor=2.5,
                repetition_count=2,
                interval_days=6,
                last_practiced=START_TIME - timedelta(days=6),
                next_review_date=next_review_date,
            )
        )
        db_session.commit()

    return _set
