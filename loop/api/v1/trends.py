"""
Trends API Endpoints
====================

Mood and speaking trends over a time window.

Every endpoint takes either ``timeframe=week|month|year|all`` or an
explicit ``start``/``end`` pair (ISO datetimes, half-open).  An end
before the start is rejected with WINDOW_001.

Route prefix: /api/v1/users

Endpoints:
    GET /{user_id}/trends/emotions                - Top emotions with colors
    GET /{user_id}/trends/speaking                - Fastest / longest / wordiest loop
    GET /{user_id}/trends/correlations?category=  - Mood effect per bucket
    GET /{user_id}/trends/mood                    - Average mood
    GET /{user_id}/trends/completion              - Loops per day on good vs other days
    GET /{user_id}/trends/comparison              - Speaking metrics vs the previous period
    GET /{user_id}/trends/summary                 - All of the above at once
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

import newrelic.agent
from fastapi import APIRouter, Depends, Path, Query

from loop.config import settings
from loop.core.errors import ValidationError
from loop.dependencies import TrendsServiceDep
from loop.schemas.common import BaseResponse
from loop.schemas.trends import (
    CategoryEffect,
    CorrelationCategory,
    EmotionFrequency,
    EntryCompletionInsight,
    MoodSummary,
    PeriodComparison,
    SpeakingHighlights,
    Timeframe,
    TimeWindow,
    TrendsSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter()

UserId = Annotated[str, Path(min_length=1, max_length=64)]


def get_window(
    timeframe: Optional[Timeframe] = Query(default=None, description="Named window; defaults to week"),
    start: Optional[datetime] = Query(default=None, description="Window start (inclusive)"),
    end: Optional[datetime] = Query(default=None, description="Window end (exclusive)"),
) -> TimeWindow:
    """Resolve the query's window; explicit bounds take precedence."""
    if start is not None or end is not None:
        if start is None or end is None:
            raise ValidationError(
                message="start and end must be given together",
                field="start" if start is None else "end",
            )
        window = TimeWindow(start=start, end=end)
        newrelic.agent.add_custom_attribute("trends.timeframe", "custom")
        return window

    timeframe = timeframe or Timeframe.WEEK
    newrelic.agent.add_custom_attribute("trends.timeframe", timeframe.value)
    return timeframe.window(datetime.now(timezone.utc), settings.local_tz)


Window = Annotated[TimeWindow, Depends(get_window)]


@router.get(
    "/{user_id}/trends/emotions",
    response_model=BaseResponse[list[EmotionFrequency]],
    summary="Top emotions",
)
async def get_top_emotions(
    user_id: UserId,
    window: Window,
    service: TrendsServiceDep,
):
    return BaseResponse(data=await service.top_emotions(user_id, window))


@router.get(
    "/{user_id}/trends/speaking",
    response_model=BaseResponse[SpeakingHighlights],
    summary="Speaking highlights",
)
async def get_speaking_highlights(
    user_id: UserId,
    window: Window,
    service: TrendsServiceDep,
):
    return BaseResponse(data=await service.speaking_highlights(user_id, window))


@router.get(
    "/{user_id}/trends/correlations",
    response_model=BaseResponse[list[CategoryEffect]],
    summary="Mood correlations",
)
async def get_correlations(
    user_id: UserId,
    window: Window,
    service: TrendsServiceDep,
    category: CorrelationCategory = Query(..., description="Dimension to bucket rated days by"),
):
    """
    Signed mood effect of each bucket of *category*.

    Buckets backed by fewer rated days than CORRELATION_MIN_SUPPORT
    are omitted.
    """
    newrelic.agent.add_custom_attribute("trends.category", category.value)
    return BaseResponse(data=await service.correlations(user_id, window, category))


@router.get(
    "/{user_id}/trends/mood",
    response_model=BaseResponse[Optional[MoodSummary]],
    summary="Average mood",
)
async def get_average_mood(
    user_id: UserId,
    window: Window,
    service: TrendsServiceDep,
):
    mood = await service.average_mood(user_id, window)
    message = "Not enough rated days" if mood is None else None
    return BaseResponse(data=mood, message=message)


@router.get(
    "/{user_id}/trends/completion",
    response_model=BaseResponse[Optional[EntryCompletionInsight]],
    summary="Entry completion",
)
async def get_entry_completion(
    user_id: UserId,
    window: Window,
    service: TrendsServiceDep,
):
    insight = await service.entry_completion(user_id, window)
    message = "Not enough rated days" if insight is None else None
    return BaseResponse(data=insight, message=message)


@router.get(
    "/{user_id}/trends/comparison",
    response_model=BaseResponse[PeriodComparison],
    summary="Period comparison",
)
async def get_period_comparison(
    user_id: UserId,
    window: Window,
    service: TrendsServiceDep,
):
    """Average wpm, duration and word count against the preceding window of equal length."""
    return BaseResponse(data=await service.period_comparison(user_id, window))

@router.get(
    "/{user_id}/trends/summary",
    response_model=BaseResponse[TrendsSummary],
    summary="Trends summary",
)
async def get_summary(
    user_id: UserId,
    window: Window,
    service: TrendsServiceDep,
):
    """Every trend for the window, computed concurrently over one snapshot."""
    summary = await service.summary(user_id, window)
    logger.info(
        "trends_summary user=%s window=%s..%s emotions=%d",
        user_id,
        window.start.isoformat(),
        window.end.isoformat(),
        len(summary.top_emotions),
    )
    return BaseResponse(data=summary)
