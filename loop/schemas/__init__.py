"""
Pydantic Schemas
================

Domain models and request/response schemas for API validation.
"""

from loop.schemas.common import BaseResponse, ErrorDetail, ErrorResponse
from loop.schemas.loop import DayActivity, EntryKind, JournalEntry
from loop.schemas.trends import TimeWindow, Timeframe

__all__ = [
    "BaseResponse",
    "ErrorDetail",
    "ErrorResponse",
    "DayActivity",
    "EntryKind",
    "JournalEntry",
    "TimeWindow",
    "Timeframe",
]
