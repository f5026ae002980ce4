"""
Shared Test Fixtures
====================

Entry factories, in-memory stores and an HTTP client wired to them
through FastAPI dependency overrides (no PostgreSQL / Redis needed).
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from loop.config import settings
from loop.dependencies import get_entry_store, get_rating_store
from loop.main import app
from loop.schemas.loop import JournalEntry
from loop.services.entry_store import InMemoryEntryStore
from loop.services.rating_store import InMemoryRatingStore

USER_ID = "user-1"


def make_entry(
    entry_id: str,
    timestamp: datetime | None = None,
    **fields,
) -> JournalEntry:
    """Build a ``JournalEntry`` with sensible defaults."""
    return JournalEntry(
        id=entry_id,
        timestamp=timestamp or datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc),
        **fields,
    )


@pytest.fixture
def entry_store() -> InMemoryEntryStore:
    return InMemoryEntryStore()


@pytest.fixture
def rating_store() -> InMemoryRatingStore:
    return InMemoryRatingStore(settings.local_tz)


@pytest_asyncio.fixture
async def client(entry_store, rating_store):
    """HTTP client against the app with in-memory stores."""
    app.dependency_overrides[get_entry_store] = lambda: entry_store
    app.dependency_overrides[get_rating_store] = lambda: rating_store
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
