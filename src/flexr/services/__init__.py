"""Store-backed services."""

from .base import BaseService
from .progress_service import ProgressService
from .watch_plan_service import WatchPlan, WatchPlanService

__all__ = [
    "BaseService",
    "ProgressService",
    "WatchPlan",
    "WatchPlanService",
]
