"""
Database Models
===============

SQLAlchemy ORM models for all database entities.

All models are imported here to ensure they are registered
with SQLAlchemy's metadata for migrations.
"""

from loop.models.loop import DayRating, LoopRecord, SleepCheckin

__all__ = [
    "LoopRecord",
    "DayRating",
    "SleepCheckin",
]
