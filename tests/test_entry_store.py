"""
Entry Store Tests
=================

Tests for the loop sources including:
- Pending loop cache (Redis Hash) reads, writes and graceful degradation
- Merged remote + pending reads (remote wins on id collisions)
- Syncing pending loops once the remote recovers
- Loop id conflicts across users and soft deletes
- Remote failures surfacing as SourceUnavailableError
- Typed decoding of stored records
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from conftest import USER_ID, make_entry
from loop.core.errors import (
    ConflictError,
    DecodeError,
    ErrorCodes,
    NotFoundError,
    SourceUnauthorizedError,
    SourceUnavailableError,
)
from loop.schemas.loop import decode_entry
from loop.schemas.trends import TimeWindow
from loop.services.cache import CacheKeys, PendingLoopCache
from loop.services.entry_store import InMemoryEntryStore, MergedEntryStore, SqlEntryStore

UTC = timezone.utc
T0 = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
WINDOW = TimeWindow(start=datetime(2026, 3, 1, tzinfo=UTC), end=datetime(2026, 4, 1, tzinfo=UTC))


def _redis_with(hash_values: dict) -> AsyncMock:
    client = AsyncMock()
    client.hgetall.return_value = hash_values
    return client


class _HashRedis:
    """Just enough of a Redis client to hold the pending hashes."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def hdel(self, key, field):
        return 1 if self.hashes.get(key, {}).pop(field, None) is not None else 0

    def pipeline(self, transaction=True):
        pipe = MagicMock()
        pipe.hset.side_effect = lambda key, field, value: self.hashes.setdefault(key, {}).__setitem__(field, value)
        pipe.execute = AsyncMock(return_value=[1, True])
        return pipe


# ---------------------------------------------------------------------------
# PendingLoopCache
# ---------------------------------------------------------------------------

class TestPendingLoopCache:

    @pytest.mark.asyncio
    async def test_fetch_decodes_and_filters_window(self):
        inside = make_entry("p1", T0, mood="Calm")
        outside = make_entry("p2", datetime(2026, 5, 1, tzinfo=UTC))
        client = _redis_with({
            inside.id: inside.model_dump_json(),
            outside.id: outside.model_dump_json(),
        })

        with patch("loop.services.cache.get_redis", return_value=client):
            result = await PendingLoopCache().fetch_entries(USER_ID, WINDOW)

        assert result == (inside,)
        client.hgetall.assert_awaited_once_with(CacheKeys.pending_loops(USER_ID))

    @pytest.mark.asyncio
    async def test_fetch_returns_empty_on_redis_failure(self):
        client = AsyncMock()
        client.hgetall.side_effect = ConnectionError("Redis down")

        with patch("loop.services.cache.get_redis", return_value=client):
            result = await PendingLoopCache().fetch_entries(USER_ID, WINDOW)

        assert result == ()

    @pytest.mark.asyncio
    async def test_malformed_value_raises_decode_error(self):
        client = _redis_with({"bad": '{"id": "bad"}'})

        with patch("loop.services.cache.get_redis", return_value=client):
            with pytest.raises(DecodeError):
                await PendingLoopCache().fetch_entries(USER_ID, WINDOW)

    @pytest.mark.asyncio
    async def test_save_writes_hash_and_refreshes_ttl(self):
        entry = make_entry("p1", T0)
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[1, True])
        client = AsyncMock()
        client.pipeline = MagicMock(return_value=pipe)

        with patch("loop.services.cache.get_redis", return_value=client):
            ok = await PendingLoopCache(ttl=60).save_entry(USER_ID, entry)

        assert ok is True
        key = CacheKeys.pending_loops(USER_ID)
        pipe.hset.assert_called_once_with(key, "p1", entry.model_dump_json())
        pipe.expire.assert_called_once_with(key, 60)

    @pytest.mark.asyncio
    async def test_save_returns_false_on_redis_failure(self):
        with patch("loop.services.cache.get_redis", side_effect=ConnectionError("Redis down")):
            ok = await PendingLoopCache().save_entry(USER_ID, make_entry("p1", T0))

        assert ok is False

    @pytest.mark.asyncio
    async def test_fetch_all_ignores_window(self):
        inside = make_entry("p1", T0)
        outside = make_entry("p2", datetime(2026, 5, 1, tzinfo=UTC))
        client = _redis_with({e.id: e.model_dump_json() for e in (inside, outside)})

        with patch("loop.services.cache.get_redis", return_value=client):
            result = await PendingLoopCache().fetch_all(USER_ID)

        assert {e.id for e in result} == {"p1", "p2"}


# ---------------------------------------------------------------------------
# MergedEntryStore
# ---------------------------------------------------------------------------

def _pending(*entries) -> PendingLoopCache:
    cache = PendingLoopCache(ttl=60)
    cache.fetch_all = AsyncMock(return_value=())
    cache.fetch_entries = AsyncMock(return_value=tuple(entries))
    cache.save_entry = AsyncMock(return_value=True)
    cache.delete_entry = AsyncMock(return_value=False)
    return cache


class TestMergedEntryStore:

    @pytest.mark.asyncio
    async def test_remote_copy_wins_on_collision(self):
        remote_copy = make_entry("shared", T0, mood="Synced")
        pending_copy = make_entry("shared", T0, mood="Draft")
        pending_only = make_entry("new", T0 + timedelta(hours=1))
        store = MergedEntryStore(
            remote=InMemoryEntryStore({USER_ID: [remote_copy]}),
            local=_pending(pending_copy, pending_only),
        )

        result = await store.fetch_entries(USER_ID, WINDOW)

        assert result == (remote_copy, pending_only)

    @pytest.mark.asyncio
    async def test_remote_failure_propagates(self):
        remote = InMemoryEntryStore()
        remote.fetch_entries = AsyncMock(side_effect=SourceUnavailableError(source="loops"))
        store = MergedEntryStore(remote=remote, local=_pending(make_entry("p", T0)))

        with pytest.raises(SourceUnavailableError):
            await store.fetch_entries(USER_ID, WINDOW)

    @pytest.mark.asyncio
    async def test_save_clears_pending_after_remote_write(self):
        remote = InMemoryEntryStore()
        local = _pending()
        store = MergedEntryStore(remote=remote, local=local)
        entry = make_entry("n", T0)

        await store.save_entry(USER_ID, entry)

        local.save_entry.assert_awaited_once_with(USER_ID, entry)
        local.delete_entry.assert_awaited_once_with(USER_ID, "n")
        assert await remote.fetch_entries(USER_ID, WINDOW) == (entry,)

    @pytest.mark.asyncio
    async def test_save_keeps_pending_when_remote_fails(self):
        remote = InMemoryEntryStore()
        remote.save_entry = AsyncMock(side_effect=SourceUnavailableError(source="loops"))
        local = _pending()
        store = MergedEntryStore(remote=remote, local=local)

        with pytest.raises(SourceUnavailableError):
            await store.save_entry(USER_ID, make_entry("n", T0))

        local.save_entry.assert_awaited_once()
        local.delete_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_pending_only_entry(self):
        local = _pending()
        local.delete_entry = AsyncMock(return_value=True)
        store = MergedEntryStore(remote=InMemoryEntryStore(), local=local)

        await store.delete_entry(USER_ID, "draft")

    @pytest.mark.asyncio
    async def test_delete_unknown_entry(self):
        store = MergedEntryStore(remote=InMemoryEntryStore(), local=_pending())

        with pytest.raises(NotFoundError):
            await store.delete_entry(USER_ID, "missing")


    @pytest.mark.asyncio
    async def test_delete_keeps_pending_copy_when_remote_unavailable(self):
        remote = InMemoryEntryStore()
        remote.delete_entry = AsyncMock(side_effect=SourceUnavailableError(source="loops"))
        local = _pending()
        store = MergedEntryStore(remote=remote, local=local)

        with pytest.raises(SourceUnavailableError):
            await store.delete_entry(USER_ID, "draft")

        local.delete_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_loop_synced_after_remote_recovers(self):
        redis_client = _HashRedis()
        remote = InMemoryEntryStore()
        store = MergedEntryStore(remote=remote, local=PendingLoopCache(ttl=60))
        entry = make_entry("p1", T0)

        with patch("loop.services.cache.get_redis", return_value=redis_client):
            remote.save_entry = AsyncMock(side_effect=SourceUnavailableError(source="loops"))
            with pytest.raises(SourceUnavailableError):
                await store.save_entry(USER_ID, entry)
            del remote.save_entry

            merged = await store.fetch_entries(USER_ID, WINDOW)

        assert merged == (entry,)
        assert await remote.fetch_entries(USER_ID, WINDOW) == (entry,)
        assert redis_client.hashes[CacheKeys.pending_loops(USER_ID)] == {}

    @pytest.mark.asyncio
    async def test_sync_leaves_conflicting_loop_pending(self):
        taken = make_entry("taken", T0)
        local = _pending()
        local.fetch_all = AsyncMock(return_value=(taken,))
        store = MergedEntryStore(remote=InMemoryEntryStore({"other-user": [taken]}), local=local)

        synced = await store.sync_pending(USER_ID)

        assert synced == 0
        local.delete_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_conflicting_save_drops_pending_copy(self):
        local = _pending()
        store = MergedEntryStore(
            remote=InMemoryEntryStore({"other-user": [make_entry("taken", T0)]}),
            local=local,
        )

        with pytest.raises(ConflictError):
            await store.save_entry(USER_ID, make_entry("taken", T0))

        local.delete_entry.assert_awaited_once_with(USER_ID, "taken")


class TestInMemoryEntryStore:

    @pytest.mark.asyncio
    async def test_resaving_live_loop_is_noop(self):
        entry = make_entry("a", T0)
        store = InMemoryEntryStore({USER_ID: [entry]})

        assert await store.save_entry(USER_ID, entry) == entry
        assert await store.fetch_entries(USER_ID, WINDOW) == (entry,)

    @pytest.mark.asyncio
    async def test_id_of_another_user_conflicts(self):
        store = InMemoryEntryStore({"other-user": [make_entry("a", T0)]})

        with pytest.raises(ConflictError) as exc_info:
            await store.save_entry(USER_ID, make_entry("a", T0))

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == ErrorCodes.LOOP_ID_CONFLICT

    @pytest.mark.asyncio
    async def test_deleted_id_cannot_be_reused(self):
        store = InMemoryEntryStore({USER_ID: [make_entry("a", T0)]})
        await store.delete_entry(USER_ID, "a")

        with pytest.raises(ConflictError):
            await store.save_entry(USER_ID, make_entry("a", T0))


# ---------------------------------------------------------------------------
# SqlEntryStore (session doubles)
# ---------------------------------------------------------------------------

class _PermissionDenied(Exception):
    sqlstate = "42501"


def _session_returning(rows) -> AsyncMock:
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    db = AsyncMock()
    db.execute.return_value = result
    return db


class TestSqlEntryStore:

    @pytest.mark.asyncio
    async def test_connection_error_becomes_source_unavailable(self):
        db = AsyncMock()
        db.execute.side_effect = OperationalError("SELECT", {}, ConnectionRefusedError())

        with pytest.raises(SourceUnavailableError) as exc_info:
            await SqlEntryStore(db).fetch_entries(USER_ID, WINDOW)

        assert not isinstance(exc_info.value, SourceUnauthorizedError)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_permission_error_becomes_unauthorized(self):
        db = AsyncMock()
        db.execute.side_effect = ProgrammingError("SELECT", {}, _PermissionDenied())

        with pytest.raises(SourceUnauthorizedError):
            await SqlEntryStore(db).fetch_entries(USER_ID, WINDOW)

    @pytest.mark.asyncio
    async def test_rows_are_decoded(self):
        row = MagicMock()
        row.to_payload.return_value = {"id": "r1", "timestamp": T0, "is_daily_loop": True}

        result = await SqlEntryStore(_session_returning([row])).fetch_entries(USER_ID, WINDOW)

        assert [e.id for e in result] == ["r1"]
        assert result[0].is_daily_loop

    @pytest.mark.asyncio
    async def test_invalid_row_raises_decode_error(self):
        row = MagicMock()
        row.to_payload.return_value = {
            "id": "r1",
            "timestamp": T0,
            "is_daily_loop": True,
            "is_follow_up": True,
        }

        with pytest.raises(DecodeError):
            await SqlEntryStore(_session_returning([row])).fetch_entries(USER_ID, WINDOW)

    @pytest.mark.asyncio
    async def test_delete_missing_row(self):
        result = MagicMock()
        result.rowcount = 0
        db = AsyncMock()
        db.execute.return_value = result

        with pytest.raises(NotFoundError):
            await SqlEntryStore(db).delete_entry(USER_ID, "missing")

    @staticmethod
    def _insert_session(inserted, existing=None) -> AsyncMock:
        result = MagicMock()
        result.scalar_one_or_none.return_value = inserted
        db = AsyncMock()
        db.execute.return_value = result
        db.get.return_value = existing
        return db

    @pytest.mark.asyncio
    async def test_insert_is_committed(self):
        db = self._insert_session(inserted="n")
        entry = make_entry("n", T0)

        assert await SqlEntryStore(db).save_entry(USER_ID, entry) == entry
        db.commit.assert_awaited_once()
        db.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_id_owned_by_another_user_conflicts(self):
        row = MagicMock(user_id="other-user", deleted_at=None)
        db = self._insert_session(inserted=None, existing=row)

        with pytest.raises(ConflictError) as exc_info:
            await SqlEntryStore(db).save_entry(USER_ID, make_entry("n", T0))

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_soft_deleted_id_conflicts(self):
        row = MagicMock(user_id=USER_ID, deleted_at=T0)
        db = self._insert_session(inserted=None, existing=row)

        with pytest.raises(ConflictError):
            await SqlEntryStore(db).save_entry(USER_ID, make_entry("n", T0))

    @pytest.mark.asyncio
    async def test_resaving_own_live_row_is_noop(self):
        row = MagicMock(user_id=USER_ID, deleted_at=None)
        db = self._insert_session(inserted=None, existing=row)
        entry = make_entry("n", T0)

        assert await SqlEntryStore(db).save_entry(USER_ID, entry) == entry


class TestDecodeEntry:

    def test_naive_timestamp_read_as_utc(self):
        entry = decode_entry({"id": "a", "timestamp": "2026-03-10T09:00:00"}, "test")

        assert entry.timestamp == T0

    def test_missing_timestamp(self):
        with pytest.raises(DecodeError):
            decode_entry({"id": "a"}, "test")
