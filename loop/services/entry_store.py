"""
Entry Store
===========

Read/write access to recorded loops.

Implementations:
    SqlEntryStore       - remote source (PostgreSQL, soft deletes)
    InMemoryEntryStore  - previews and tests
    MergedEntryStore    - remote + pending Redis cache, deduplicated by id

Every fetch returns an immutable snapshot (a tuple of frozen
``JournalEntry`` models).  A fetch that cannot reach its source raises
``SourceUnavailableError``; it never returns an empty tuple in its place.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loop.core.errors import (
    ConflictError,
    ErrorCodes,
    NotFoundError,
    SourceUnauthorizedError,
    SourceUnavailableError,
)
from loop.models.loop import LoopRecord
from loop.schemas.loop import JournalEntry, decode_entry
from loop.schemas.trends import TimeWindow
from loop.services.cache import PendingLoopCache
from loop.services.daily_aggregator import dedupe_by_id

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for "insufficient_privilege"
_PERMISSION_DENIED = "42501"


@contextmanager
def source_errors(source: str) -> Iterator[None]:
    """
    Translate driver failures into domain errors.

    Permission failures become ``SourceUnauthorizedError``; any other
    SQLAlchemy or socket error becomes ``SourceUnavailableError``.
    """
    try:
        yield
    except DBAPIError as exc:
        logger.error("%s query failed: %s", source, exc)
        if getattr(exc.orig, "sqlstate", None) == _PERMISSION_DENIED:
            raise SourceUnauthorizedError(source=source) from exc
        raise SourceUnavailableError(source=source) from exc
    except (SQLAlchemyError, OSError) as exc:
        logger.error("%s query failed: %s", source, exc)
        raise SourceUnavailableError(source=source) from exc


def _sorted(entries) -> tuple[JournalEntry, ...]:
    return tuple(sorted(entries, key=lambda e: (e.timestamp, e.id)))


def _is_live_row_of(row: Optional[LoopRecord], user_id: str) -> bool:
    return row is not None and row.user_id == user_id and row.deleted_at is None


class EntryStore:
    """Interface shared by every loop source."""

    async def fetch_entries(self, user_id: str, window: TimeWindow) -> tuple[JournalEntry, ...]:
        raise NotImplementedError

    async def save_entry(self, user_id: str, entry: JournalEntry) -> JournalEntry:
        raise NotImplementedError

    async def delete_entry(self, user_id: str, entry_id: str) -> None:
        raise NotImplementedError


class SqlEntryStore(EntryStore):
    """Loops persisted in the ``loops`` table."""

    source = "loops"

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_entries(
        self,
        user_id: str,
        window: TimeWindow,
    ) -> tuple[JournalEntry, ...]:
        """Live (not soft-deleted) loops recorded inside *window*."""
        stmt = (
            select(LoopRecord)
            .where(
                LoopRecord.user_id == user_id,
                LoopRecord.deleted_at.is_(None),
                LoopRecord.recorded_at >= window.start,
                LoopRecord.recorded_at < window.end,
            )
            .order_by(LoopRecord.recorded_at, LoopRecord.loop_id)
        )
        with source_errors(self.source):
            result = await self.db.execute(stmt)
            rows = result.scalars().all()

        return tuple(decode_entry(row.to_payload(), self.source) for row in rows)

    async def save_entry(self, user_id: str, entry: JournalEntry) -> JournalEntry:
        """
        Insert *entry*.

        Re-saving one of the user's live loops is a no-op.  An id owned by
        another user, or one that was soft-deleted, raises ``ConflictError``.
        """
        stmt = pg_insert(LoopRecord).values(
            loop_id=entry.id,
            user_id=user_id,
            recorded_at=entry.timestamp,
            prompt_text=entry.prompt_text,
            category=entry.category,
            transcript=entry.transcript,
            is_video=entry.is_video,
            is_daily_loop=entry.is_daily_loop,
            is_follow_up=entry.is_follow_up,
            mood=entry.mood,
            topic=entry.topic,
            word_count=entry.word_count,
            speaking_rate_wpm=entry.speaking_rate_wpm,
            duration_seconds=entry.duration,
        ).on_conflict_do_nothing(index_elements=["loop_id"]).returning(LoopRecord.loop_id)

        with source_errors(self.source):
            result = await self.db.execute(stmt)
            inserted = result.scalar_one_or_none()
            if inserted is None:
                existing = await self.db.get(LoopRecord, entry.id)
            # Durable before the caller drops its pending copy
            await self.db.commit()

        if inserted is None and not _is_live_row_of(existing, user_id):
            logger.warning("Loop id %s already taken; rejected for user %s", entry.id, user_id)
            raise ConflictError(
                code=ErrorCodes.LOOP_ID_CONFLICT,
                message="Loop id already in use",
                loop_id=entry.id,
            )
        return entry

    async def delete_entry(self, user_id: str, entry_id: str) -> None:
        """Soft-delete *entry_id*; ``NotFoundError`` when no live row matches."""
        stmt = (
            update(LoopRecord)
            .where(
                LoopRecord.loop_id == entry_id,
                LoopRecord.user_id == user_id,
                LoopRecord.deleted_at.is_(None),
            )
            .values(deleted_at=datetime.now(timezone.utc))
        )
        with source_errors(self.source):
            result = await self.db.execute(stmt)

        if result.rowcount == 0:
            raise NotFoundError(
                code=ErrorCodes.LOOP_NOT_FOUND,
                message="Loop not found",
                loop_id=entry_id,
            )


class InMemoryEntryStore(EntryStore):
    """
    Process-local store for previews and tests.

    Ids stay claimed after a delete, so id conflicts behave as in
    ``SqlEntryStore``.
    """

    def __init__(self, entries: Mapping[str, list[JournalEntry]] | None = None):
        self._entries: dict[str, dict[str, JournalEntry]] = defaultdict(dict)
        self._owners: dict[str, str] = {}
        for user_id, user_entries in (entries or {}).items():
            for entry in user_entries:
                self._entries[user_id][entry.id] = entry
                self._owners[entry.id] = user_id

    async def fetch_entries(
        self,
        user_id: str,
        window: TimeWindow,
    ) -> tuple[JournalEntry, ...]:
        return _sorted(
            e for e in self._entries[user_id].values() if window.contains(e.timestamp)
        )

    async def save_entry(self, user_id: str, entry: JournalEntry) -> JournalEntry:
        owner = self._owners.get(entry.id)
        if owner is None:
            self._owners[entry.id] = user_id
            self._entries[user_id][entry.id] = entry
        elif owner != user_id or entry.id not in self._entries[user_id]:
            raise ConflictError(
                code=ErrorCodes.LOOP_ID_CONFLICT,
                message="Loop id already in use",
                loop_id=entry.id,
            )
        return entry

    async def delete_entry(self, user_id: str, entry_id: str) -> None:
        if self._entries[user_id].pop(entry_id, None) is None:
            raise NotFoundError(
                code=ErrorCodes.LOOP_NOT_FOUND,
                message="Loop not found",
                loop_id=entry_id,
            )


class MergedEntryStore(EntryStore):
    """
    Union of the remote store and the pending (not yet synced) cache.

    Every read first pushes the user's pending loops to the remote store,
    so a loop parked during a remote outage is synced by the next read
    once the remote is back.  On id collisions the remote copy wins.

    A remote failure propagates even when pending entries are available;
    the pending cache itself degrades to "nothing pending" on Redis errors.
    """

    def __init__(self, remote: EntryStore, local: PendingLoopCache):
        self.remote = remote
        self.local = local

    async def sync_pending(self, user_id: str) -> int:
        """
        Write every pending loop of *user_id* to the remote store.

        Written loops leave the pending cache.  A loop whose id is taken
        remotely stays pending until its TTL runs out.  Returns the
        number of loops synced.
        """
        synced = 0
        for entry in await self.local.fetch_all(user_id):
            try:
                await self.remote.save_entry(user_id, entry)
            except ConflictError:
                logger.warning("Pending loop %s for user %s conflicts with a stored id", entry.id, user_id)
                continue
            await self.local.delete_entry(user_id, entry.id)
            synced += 1

        if synced:
            logger.info("Synced %d pending loops for user %s", synced, user_id)
        return synced

    async def fetch_entries(
        self,
        user_id: str,
        window: TimeWindow,
    ) -> tuple[JournalEntry, ...]:
        await self.sync_pending(user_id)
        remote, pending = await asyncio.gather(
            self.remote.fetch_entries(user_id, window),
            self.local.fetch_entries(user_id, window),
        )
        return _sorted(dedupe_by_id([*remote, *pending]))

    async def save_entry(self, user_id: str, entry: JournalEntry) -> JournalEntry:
        """
        Park the entry in the pending cache, then persist it remotely.

        The pending copy is only dropped once the remote write went
        through, or when the remote rejects the id as taken.  On any
        other remote failure it stays pending and the error propagates.
        """
        await self.local.save_entry(user_id, entry)
        try:
            saved = await self.remote.save_entry(user_id, entry)
        except ConflictError:
            await self.local.delete_entry(user_id, entry.id)
            raise
        await self.local.delete_entry(user_id, entry.id)
        return saved

    async def delete_entry(self, user_id: str, entry_id: str) -> None:
        """Delete remotely first; the pending copy is only touched afterwards."""
        try:
            await self.remote.delete_entry(user_id, entry_id)
        except NotFoundError:
            if not await self.local.delete_entry(user_id, entry_id):
                raise
            logger.info("Deleted pending-only loop %s", entry_id)
            return
        await self.local.delete_entry(user_id, entry_id)
