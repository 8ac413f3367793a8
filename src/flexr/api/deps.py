"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Optional

from fastapi import Header

from ..config import get_settings
from ..db.adapters import WorkoutStore, get_store
from ..exceptions import UnauthorizedError
from ..services.progress_service import ProgressService


@lru_cache
def get_workout_store() -> WorkoutStore:
    """Get the configured workout store instance."""
    return get_store(get_settings())


@lru_cache
def get_progress_service() -> ProgressService:
    """Get the progress service instance."""
    settings = get_settings()
    return ProgressService(
        store=get_workout_store(),
        default_window_days=settings.progress_default_days,
    )


def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """Caller identity forwarded by the upstream gateway.

    Raises:
        UnauthorizedError: If the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("Missing X-User-Id header")
    return x_user_id.strip()
