"""
Practice API Router.

Endpoints for adaptive practice sessions:
- Session lifecycle (start, next, answer, end)
- Session summary
- Learner topic mastery

Engine errors propagate as PracticeError and are rendered by the
application's exception handler.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from loguru import logger
from pydantic import BaseModel, Field, StrictFloat, StrictInt
from sqlalchemy.orm import Session

from config import get_settings
from src.core.errors import InternalError, PracticeError
from src.core.mastery import TopicMasterySnapshot
from src.db.database import get_session
from src.practice.engine import PracticeEngine

router = APIRouter()


def get_practice_engine(db: Session = Depends(get_session)) -> PracticeEngine:
    """Build a request-scoped engine around the request's database session."""
    return PracticeEngine(db, get_settings())


@contextmanager
def _unexpected_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except PracticeError:
        raise
    except Exception as exc:
        logger.exception(f"Failed to {operation}")
        raise InternalError(f"Failed to {operation}") from exc


# ========================================
# Request/Response Models
# ========================================


class StartRequest(BaseModel):
    """Request model for starting a practice session."""

    learner_id: str = Field(..., description="Learner identifier")
    exam_id: str = Field(..., description="Exam the session prepares for")
    subject_id: str = Field(..., description="Subject to draw questions from")
    mode: str = Field(..., description="Practice mode: recall, refine, conquer")
    xp_goal: StrictInt | StrictFloat = Field(..., description="XP target for the session (> 0)")


class StartResponse(BaseModel):
    session_id: str


class SessionRequest(BaseModel):
    """Request model for next/end."""

    learner_id: str = Field(..., description="Learner identifier")
    session_id: str = Field(..., description="Practice session identifier")


class NextResponse(BaseModel):
    """Response model for a delivered question."""

    delivery_id: str
    question: dict[str, Any]
    xp_so_far: int
    xp_goal: int
    bonus_active: bool


class AnswerRequest(BaseModel):
    """Request model for submitting an answer."""

    learner_id: str = Field(..., description="Learner identifier")
    session_id: str = Field(..., description="Practice session identifier")
    delivery_id: str = Field(..., description="Delivery returned by /next")
    answer: Any = Field(..., description="Submitted answer (string, number, list or object)")
    time_taken_seconds: StrictFloat | StrictInt = Field(
        ..., description="Seconds spent on the question"
    )
    confidence_level: str | None = Field(None, description="low, medium or high")


class AnswerResponse(BaseModel):
    is_correct: bool
    xp_awarded: int


class SessionSummaryResponse(BaseModel):
    """Response model for a session summary."""

    session_id: str
    learner_id: str
    exam_id: str
    subject_id: str
    mode: str
    status: str
    xp_goal: int
    xp_so_far: int
    questions_count: int
    correct_count: int
    accuracy: float
    bonus_active: bool
    start_time: datetime
    end_time: datetime | None
    deliveries_by_strategy: dict[str, int]


class TopicMasteryResponse(BaseModel):
    topic_id: str
    mastery_level: float
    level: str
    repetition_count: int
    ease_factor: float
    interval_days: int
    last_practiced: datetime | None
    next_review_date: datetime | None


class LearnerMasteryResponse(BaseModel):
    """Response model for a learner's mastery overview."""

    learner_id: str
    theta: float
    topics: list[TopicMasteryResponse]


# ========================================
# Session Lifecycle Endpoints
# ========================================


@router.post(
    "/start",
    response_model=StartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start practice session",
)
def start_session(
    request: StartRequest,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> StartResponse:
    """Create an in_progress session for the learner."""
    with _unexpected_errors("start practice session"):
        session_id = engine.start_session(
            learner_id=request.learner_id,
            exam_id=request.exam_id,
            subject_id=request.subject_id,
            mode=request.mode,
            xp_goal=request.xp_goal,
        )
    return StartResponse(session_id=session_id)


@router.post("/next", response_model=NextResponse, summary="Get next question")
def next_question(
    request: SessionRequest,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> NextResponse:
    """
    Select and deliver the next question.

    Due spaced-repetition reviews come first; the rest of the mix depends
    on the session mode. The answer key is never included.
    """
    with _unexpected_errors(f"deliver next question for session {request.session_id}"):
        delivered = engine.next_question(request.learner_id, request.session_id)
    return NextResponse(
        delivery_id=delivered.delivery_id,
        question=delivered.question,
        xp_so_far=delivered.xp_so_far,
        xp_goal=delivered.xp_goal,
        bonus_active=delivered.bonus_active,
    )


@router.post("/answer", response_model=AnswerResponse, summary="Submit answer")
def submit_answer(
    request: AnswerRequest,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> AnswerResponse:
    """Score an answer to a delivered question."""
    with _unexpected_errors(f"submit answer for delivery {request.delivery_id}"):
        result = engine.submit_answer(
            learner_id=request.learner_id,
            session_id=request.session_id,
            delivery_id=request.delivery_id,
            answer=request.answer,
            time_taken_seconds=request.time_taken_seconds,
            confidence_level=request.confidence_level,
        )
    return AnswerResponse(is_correct=result.is_correct, xp_awarded=result.xp_awarded)


@router.post("/end", summary="End practice session")
def end_session(
    request: SessionRequest,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> dict[str, Any]:
    """Complete an in_progress session."""
    with _unexpected_errors(f"end session {request.session_id}"):
        engine.end_session(request.learner_id, request.session_id)
    return {}


# ========================================
# Read Endpoints
# ========================================


@router.get(
    "/sessions/{session_id}",
    response_model=SessionSummaryResponse,
    summary="Get session summary",
)
def get_session_summary(
    session_id: str,
    learner_id: str = Query(..., description="Learner who owns the session"),
    engine: PracticeEngine = Depends(get_practice_engine),
) -> SessionSummaryResponse:
    """Progress, XP and per-strategy delivery counts for a session."""
    with _unexpected_errors(f"get session {session_id}"):
        summary = engine.session_summary(learner_id, session_id)
    return SessionSummaryResponse(
        session_id=summary.session_id,
        learner_id=summary.learner_id,
        exam_id=summary.exam_id,
        subject_id=summary.subject_id,
        mode=summary.mode,
        status=summary.status,
        xp_goal=summary.xp_goal,
        xp_so_far=summary.xp_so_far,
        questions_count=summary.questions_count,
        correct_count=summary.correct_count,
        accuracy=round(summary.accuracy, 4),
        bonus_active=summary.bonus_active,
        start_time=summary.start_time,
        end_time=summary.end_time,
        deliveries_by_strategy=summary.deliveries_by_strategy,
    )


@router.get(
    "/mastery/{learner_id}",
    response_model=LearnerMasteryResponse,
    summary="Get learner mastery",
)
def get_learner_mastery(
    learner_id: str,
    engine: PracticeEngine = Depends(get_practice_engine),
) -> LearnerMasteryResponse:
    """Per-topic mastery with level labels, plus the learner's ability estimate."""
    settings = engine.settings
    with _unexpected_errors(f"get mastery for learner {learner_id}"):
        rows = engine.learner_mastery(learner_id)
        theta = engine.learner_theta(learner_id)

    topics = []
    for row in rows:
        snapshot = TopicMasterySnapshot.from_row(
            row, settings.weak_mastery_threshold, settings.strong_mastery_threshold
        )
        topics.append(
            TopicMasteryResponse(
                topic_id=snapshot.topic_id,
                mastery_level=round(snapshot.mastery_level, 4),
                level=snapshot.level.value,
                repetition_count=snapshot.repetition_count,
                ease_factor=round(snapshot.ease_factor, 4),
                interval_days=snapshot.interval_days,
                last_practiced=snapshot.last_practiced,
                next_review_date=snapshot.next_review_date,
            )
        )
    return LearnerMasteryResponse(learner_id=learner_id, theta=round(theta, 4), topics=topics)
