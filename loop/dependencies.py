"""
Common Dependencies
===================

Shared dependencies used across the application: stores bound to the
request's DB session, the process-wide color assigner and the services
built from them.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from loop.config import settings
from loop.db.session import get_db
from loop.services.cache import PendingLoopCache
from loop.services.emotion_colors import EmotionColorAssigner
from loop.services.entry_store import EntryStore, MergedEntryStore, SqlEntryStore
from loop.services.rating_store import RatingStore, SqlRatingStore
from loop.services.schedule_service import ScheduleService
from loop.services.trends_engine import TrendsEngine
from loop.services.trends_service import TrendsService

# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]

# Pending cache holds no per-request state
_pending_cache = PendingLoopCache()


def get_entry_store(db: DBSession) -> EntryStore:
    """Synced loops merged with the user's pending recordings."""
    return MergedEntryStore(remote=SqlEntryStore(db), local=_pending_cache)


def get_rating_store(db: DBSession) -> RatingStore:
    return SqlRatingStore(db, settings.local_tz)


def get_color_assigner(request: Request) -> EmotionColorAssigner:
    """
    The app-wide assigner created at startup.

    Created lazily if the lifespan did not run (e.g. a bare test app).
    """
    assigner = getattr(request.app.state, "color_assigner", None)
    if assigner is None:
        assigner = EmotionColorAssigner(settings.emotion_palette_list)
        request.app.state.color_assigner = assigner
    return assigner


def get_trends_engine() -> TrendsEngine:
    return TrendsEngine(
        tz=settings.local_tz,
        top_n=settings.TOP_EMOTIONS_LIMIT,
        min_support=settings.CORRELATION_MIN_SUPPORT,
    )


EntryStoreDep = Annotated[EntryStore, Depends(get_entry_store)]
RatingStoreDep = Annotated[RatingStore, Depends(get_rating_store)]
ColorAssigner = Annotated[EmotionColorAssigner, Depends(get_color_assigner)]


def get_schedule_service(
    entries: EntryStoreDep,
    ratings: RatingStoreDep,
    assigner: ColorAssigner,
) -> ScheduleService:
    return ScheduleService(
        entries=entries,
        ratings=ratings,
        assigner=assigner,
        tz=settings.local_tz,
        first_weekday=settings.FIRST_WEEKDAY,
    )


def get_trends_service(
    entries: EntryStoreDep,
    ratings: RatingStoreDep,
    assigner: ColorAssigner,
    engine: Annotated[TrendsEngine, Depends(get_trends_engine)],
) -> TrendsService:
    return TrendsService(entries=entries, ratings=ratings, assigner=assigner, engine=engine)


ScheduleServiceDep = Annotated[ScheduleService, Depends(get_schedule_service)]
TrendsServiceDep = Annotated[TrendsService, Depends(get_trends_service)]
