"""
FastAPI application for the practice engine.

Provides REST API for:
- Practice sessions (start, next question, answer, end)
- Session summaries
- Learner topic mastery
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from config import get_settings
from src.core.errors import InvalidArgumentError, PracticeError
from src.core.log_config import configure_logging
from src.db.database import check_database_health, init_db

settings = get_settings()

SERVICE_NAME = "practice-engine"
SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging(settings)
    logger.info(f"Starting {SERVICE_NAME} service...")
    init_db()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info(f"Shutting down {SERVICE_NAME} service...")


app = FastAPI(
    title="Practice Engine",
    description="""
    Adaptive practice sessions over a question bank.

    ## Features

    - **Session lifecycle**: start, next question, answer, end
    - **Adaptive selection**: spaced-repetition reviews, weak topics, hard questions on
      mastered topics and evaluation, mixed per practice mode (recall, refine, conquer)
    - **Learner model**: IRT ability (theta), per-topic mastery, SM-2 review scheduling
    - **XP**: per-session XP goal with a bonus round once it is reached
    """,
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Error Handlers
# ========================================


@app.exception_handler(PracticeError)
async def practice_error_handler(request: Request, exc: PracticeError) -> JSONResponse:
    """Report engine errors as {"error": kind, "message": ...} with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _field_name(loc: tuple) -> str:
    """Top-level request field an error refers to."""
    parts = [part for part in loc if part not in ("body", "query", "path")]
    return str(parts[0]) if parts else ""


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are invalid arguments (400), not 422."""
    fields = sorted({_field_name(err.get("loc", ())) for err in exc.errors()})
    message = f"Invalid request fields: {', '.join(f for f in fields if f)}" if fields else "Invalid request"
    logger.warning(f"{request.method} {request.url.path} rejected: {message}")
    error = InvalidArgumentError(message)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    db_status, db_error = check_database_health()

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "components": {"database": db_status},
        "config": settings.get_selection_config(),
    }
    if db_error:
        result["errors"] = {"database": db_error}

    return result


# ========================================
# Import and mount routers
# ========================================

from src.api.routers import practice_router  # noqa: E402

app.include_router(practice_router.router, prefix="/practice", tags=["Practice"])
