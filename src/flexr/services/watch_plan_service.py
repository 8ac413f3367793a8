"""
Watch plan service.

Fetches the signed-in user's workouts for today and the rest of the week
so the wearable can run them without the phone. Store calls are blocking
and run in a worker thread; failures are recorded on the service and the
last good results are kept.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, List, Optional

from ..db.adapters import WorkoutRecord, WorkoutStore
from ..utils.dates import utc_now

logger = logging.getLogger(__name__)

UPCOMING_DAYS = 7


@dataclass
class WatchPlan:
    """Latest fetched plan for one user."""

    user_id: Optional[str] = None
    todays_workouts: List[WorkoutRecord] = field(default_factory=list)
    upcoming_workouts: List[WorkoutRecord] = field(default_factory=list)
    last_fetch_at: Optional[datetime] = None
    error: Optional[str] = None


class WatchPlanService:
    """
    Keeps today's and the upcoming week's workouts for the watch.

    Usage:
        service = WatchPlanService(store)
        plan = await service.fetch_todays_workouts(user_id)
        if plan.error:
            ...  # previous results are still in plan.todays_workouts
    """

    def __init__(
        self,
        store: WorkoutStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock
        self.plan = WatchPlan()
        self.is_loading = False

    @property
    def last_error(self) -> Optional[str]:
        return self.plan.error

    def _load(self, user_id: str, today: date):
        todays = self._store.get_workouts_for_day(user_id, today)
        upcoming = self._store.get_upcoming_workouts(user_id, today, days=UPCOMING_DAYS)
        return todays, upcoming

    async def fetch_todays_workouts(self, user_id: Optional[str]) -> WatchPlan:
        """
        Refresh the plan for a user.

        Today is [00:00 UTC, next 00:00 UTC); upcoming is the following
        days up to today + 7. Never raises store errors: they are stored
        in ``plan.error`` and the previous results are kept.
        """
        if not user_id:
            self.plan.error = "Not synced with phone yet"
            logger.warning("Watch plan fetch skipped: no user id")
            return self.plan

        today = self._clock().date()
        self.is_loading = True
        self.plan.error = None
        try:
            todays, upcoming = await asyncio.to_thread(self._load, user_id, today)
        except Exception as e:
            logger.error(f"Watch plan fetch failed: {e}")
            self.plan.error = str(e)
            return self.plan
        finally:
            self.is_loading = False

        if self.plan.user_id != user_id:
            logger.info("Watch plan switched to a new user")
        self.plan.user_id = user_id
        self.plan.todays_workouts = todays
        self.plan.upcoming_workouts = upcoming
        self.plan.last_fetch_at = self._clock()

        logger.info(
            f"Fetched {len(todays)} workouts for today and {len(upcoming)} upcoming"
        )
        return self.plan
