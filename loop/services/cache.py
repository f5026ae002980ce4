"""
Redis Cache Service
===================

Redis connection management and the pending loop cache.

Recordings that have not yet reached PostgreSQL are parked in a
per-user Redis Hash.  Reads merge them with synced entries and push
them to PostgreSQL once it is reachable:

    loops:pending:{user_id}  -> Hash {loop_id: JSON entry dict, ...}

The hash TTL is refreshed on every write; a user who stops recording
eventually has their leftovers expire.

On Redis connection failure every public method logs a warning and
degrades (empty result / ``False``) instead of raising.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from loop.config import settings
from loop.schemas.loop import JournalEntry, decode_entry
from loop.schemas.trends import TimeWindow

logger = logging.getLogger(__name__)

# Global Redis client instance
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """
    Initialize Redis connection pool and pre-warm a connection.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = await redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        await _redis_client.ping()
        logger.info("Redis connection established")

    return _redis_client


async def get_redis() -> Redis:
    """Get Redis client, initializing if necessary."""
    if _redis_client is None:
        return await init_redis()
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")


class CacheKeys:
    """Cache key builders for consistent naming."""

    @staticmethod
    def pending_loops(user_id: str) -> str:
        """Redis Hash of not-yet-synced loops for a user."""
        return f"loops:pending:{user_id}"


class PendingLoopCache:
    """
    Local (device-side) source of loops that are recorded but not synced.

    Hash values are decoded into ``JournalEntry`` models; a malformed
    value raises ``DecodeError`` like any other stored record.
    """

    def __init__(self, ttl: Optional[int] = None):
        self.ttl = ttl if ttl is not None else settings.PENDING_LOOP_TTL_SECONDS

    # ---- reads -----------------------------------------------------------

    async def fetch_all(self, user_id: str) -> tuple[JournalEntry, ...]:
        """Every pending loop of *user_id*; ``()`` on Redis failure."""
        try:
            client = await get_redis()
            raw: dict[str, str] = await client.hgetall(CacheKeys.pending_loops(user_id))
        except Exception as exc:
            logger.warning("pending_loops fetch error for user %s: %s", user_id, exc)
            return ()

        return tuple(decode_entry(payload, "pending_loops") for payload in raw.values())

    async def fetch_entries(
        self,
        user_id: str,
        window: TimeWindow,
    ) -> tuple[JournalEntry, ...]:
        """Pending loops for *user_id* inside *window*."""
        entries = await self.fetch_all(user_id)
        return tuple(e for e in entries if window.contains(e.timestamp))

    # ---- writes ----------------------------------------------------------

    async def save_entry(self, user_id: str, entry: JournalEntry) -> bool:
        """Park *entry* in the pending hash and refresh the TTL."""
        try:
            client = await get_redis()
            key = CacheKeys.pending_loops(user_id)
            pipe = client.pipeline(transaction=False)
            pipe.hset(key, entry.id, entry.model_dump_json())
            pipe.expire(key, self.ttl)
            await pipe.execute()
            return True
        except Exception as exc:
            logger.warning("pending_loops save error for %s: %s", entry.id, exc)
            return False

    async def delete_entry(self, user_id: str, entry_id: str) -> bool:
        """Drop *entry_id* from the pending hash; True when it was present."""
        try:
            client = await get_redis()
            removed = await client.hdel(CacheKeys.pending_loops(user_id), entry_id)
            return removed > 0
        except Exception as exc:
            logger.warning("pending_loops delete error for %s: %s", entry_id, exc)
            return False

