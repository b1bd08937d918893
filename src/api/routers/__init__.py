"""API routers for the practice engine."""

from src.api.routers import practice_router

__all__ = [
    "practice_router",
]
