"""
Loops API Endpoints
===================

Recording loops and the daily check-ins (rating, sleep).

New loops are parked in the Redis pending cache before the database
write.  A recording made while PostgreSQL is unreachable is written to
the DB by the first read after it comes back.

Route prefix: /api/v1/users

Endpoints:
    POST   /{user_id}/loops             - Record a loop
    DELETE /{user_id}/loops/{loop_id}   - Soft-delete a loop
    GET    /{user_id}/days/{day}        - Loops of one day, by kind, plus rating
    PUT    /{user_id}/ratings/{day}     - Upsert the day's mood rating
    PUT    /{user_id}/sleep/{day}       - Upsert the night's sleep hours
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from loop.dependencies import ScheduleServiceDep
from loop.schemas.common import BaseResponse
from loop.schemas.loop import (
    DayActivity,
    JournalEntry,
    LoopCreate,
    RatingUpdate,
    SleepUpdate,
)
from loop.schemas.trends import DayCell

router = APIRouter()

UserId = Annotated[str, Path(min_length=1, max_length=64, description="Owner of the loops")]


@router.post(
    "/{user_id}/loops",
    response_model=BaseResponse[JournalEntry],
    status_code=status.HTTP_201_CREATED,
    summary="Record a loop",
)
async def create_loop(
    user_id: UserId,
    data: LoopCreate,
    service: ScheduleServiceDep,
):
    """
    Record a new loop.

    ``id`` and ``timestamp`` are generated when the client omits them.
    An entry flagged both daily and follow-up is rejected; an id already
    used by another loop (including a deleted one) is a 409 conflict.
    """
    entry = await service.record_loop(user_id, data)
    return BaseResponse(data=entry, message="Loop recorded")


@router.delete(
    "/{user_id}/loops/{loop_id}",
    response_model=BaseResponse[None],
    summary="Delete a loop",
)
async def delete_loop(
    user_id: UserId,
    loop_id: Annotated[str, Path(min_length=1, max_length=64)],
    service: ScheduleServiceDep,
):
    await service.delete_loop(user_id, loop_id)
    return BaseResponse(message="Loop deleted")


@router.get(
    "/{user_id}/days/{day}",
    response_model=BaseResponse[DayActivity],
    summary="Day activity",
)
async def get_day(
    user_id: UserId,
    day: date,
    service: ScheduleServiceDep,
    newest_first: bool = Query(default=False, description="Order each bucket newest first"),
):
    """
    Loops of *day* split into daily / thematic / follow-up, plus rating.

    A day without loops or rating is returned with empty buckets and a
    "No entries found" message; a failing source is a 503, never empty.
    """
    activity = await service.day_activity(user_id, day, newest_first=newest_first)
    message = "No entries found" if activity.is_empty else None
    return BaseResponse(data=activity, message=message)


@router.put(
    "/{user_id}/ratings/{day}",
    response_model=BaseResponse[DayCell],
    summary="Rate a day",
)
async def put_rating(
    user_id: UserId,
    day: date,
    data: RatingUpdate,
    service: ScheduleServiceDep,
):
    cell = await service.save_rating(user_id, day, data.rating)
    return BaseResponse(data=cell)


@router.put(
    "/{user_id}/sleep/{day}",
    response_model=BaseResponse[None],
    summary="Log sleep",
)
async def put_sleep(
    user_id: UserId,
    day: date,
    data: SleepUpdate,
    service: ScheduleServiceDep,
):
    await service.save_sleep_hours(user_id, day, data.hours)
    return BaseResponse(message="Sleep check-in saved")
