"""
Schedule API Endpoints
======================

Calendar views annotated with day ratings.

Route prefix: /api/v1/users

Endpoints:
    GET /{user_id}/schedule/month?year=&month=  - Padded month grid
    GET /{user_id}/schedule/week?reference=     - 7 days ending at reference
    GET /{user_id}/schedule/streak              - Current activity streak
"""

from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Path, Query

from loop.dependencies import ScheduleServiceDep
from loop.schemas.common import BaseResponse
from loop.schemas.trends import DayCell

router = APIRouter()

UserId = Annotated[str, Path(min_length=1, max_length=64)]


@router.get(
    "/{user_id}/schedule/month",
    response_model=BaseResponse[list[Optional[DayCell]]],
    summary="Month calendar",
)
async def get_month(
    user_id: UserId,
    service: ScheduleServiceDep,
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
):
    """``null`` slots pad the grid to whole weeks starting on the configured weekday."""
    return BaseResponse(data=await service.month(user_id, year, month))


@router.get(
    "/{user_id}/schedule/week",
    response_model=BaseResponse[list[Optional[DayCell]]],
    summary="Week strip",
)
async def get_week(
    user_id: UserId,
    service: ScheduleServiceDep,
    reference: Optional[date] = Query(default=None, description="Last day shown. Defaults to today."),
):
    return BaseResponse(data=await service.week(user_id, reference))


@router.get(
    "/{user_id}/schedule/streak",
    response_model=BaseResponse[dict],
    summary="Current streak",
)
async def get_streak(
    user_id: UserId,
    service: ScheduleServiceDep,
):
    """Consecutive days before today with at least one loop or a rating."""
    streak = await service.streak(user_id)
    return BaseResponse(data={"current_streak": streak})
