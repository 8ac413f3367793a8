"""Analytics API routes.

Progress metrics over a date window and weekly summaries for the calling
user. Responses are wrapped as {"success": true, "data": ...}.
"""

from datetime import date
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_current_user_id, get_progress_service
from ...models.sync import to_camel
from ...services.progress_service import ProgressService


router = APIRouter()


class GenerateWeeklySummaryRequest(BaseModel):
    """Request body for generating a weekly summary."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    week_starting: date = Field(..., alias="weekStarting", description="First day of the week")


@router.get("/progress")
def get_progress(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    granularity: Literal["day", "week", "month"] = Query(default="week"),
    user_id: str = Depends(get_current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> Dict[str, Any]:
    """
    Get progress metrics for the caller.

    Query: ?startDate=2024-01-01&endDate=2024-01-31&granularity=week
    """
    report = service.compute_progress(
        user_id,
        start_date=start_date,
        end_date=end_date,
        granularity=granularity,
    )
    return {"success": True, "data": report.to_dict()}


@router.get("/weekly-summary")
def get_weekly_summary(
    week_starting: Optional[date] = Query(default=None, alias="weekStarting"),
    user_id: str = Depends(get_current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> Dict[str, Any]:
    """Get the summary for a week, or the most recent one."""
    summary = service.get_weekly_summary(user_id, week_starting)
    return {"success": True, "data": {"summary": summary.to_dict()}}


@router.post("/weekly-summary")
def generate_weekly_summary(
    request: GenerateWeeklySummaryRequest,
    user_id: str = Depends(get_current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> Dict[str, Any]:
    """Generate (or regenerate) the summary for a week."""
    summary = service.generate_weekly_summary(user_id, request.week_starting)
    return {"success": True, "data": {"summary": summary.to_dict()}}
