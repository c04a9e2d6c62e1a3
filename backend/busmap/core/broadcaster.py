"""Fan vehicle snapshots out to WebSocket subscribers, optionally mirrored to Redis pub/sub."""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

from busmap.config import settings

logger = logging.getLogger(__name__)

CHANNEL = "busmap:vehicles"
STATE_KEY = "busmap:state"


class Broadcaster:
    """Keeps the latest snapshot in memory and pushes each update to subscriber queues."""

    def __init__(self, redis_url: str | None = None) -> None:
        self.redis_url = settings.redis_url if redis_url is None else redis_url
        self._redis: aioredis.Redis | None = None
        self._subscribers: set[asyncio.Queue] = set()
        self._latest: bytes | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def connect(self) -> None:
        if not self.redis_url:
            logger.info("Redis not configured, broadcasting in-process only")
            return
        self._redis = aioredis.from_url(self.redis_url, decode_responses=False)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()

    async def publish(self, vehicles_data: list[dict]) -> None:
        """Store the snapshot, mirror it to Redis and fan out to WebSocket subscribers."""
        payload = orjson.dumps({"type": "update", "vehicles": vehicles_data})
        self._latest = payload

        if self._redis:
            try:
                await self._redis.set(STATE_KEY, payload)
                await self._redis.publish(CHANNEL, payload)
            except Exception:
                logger.exception("Failed to publish to Redis")

        # A subscriber whose queue is full has stopped reading; drop it
        dead = set()
        for q in self._subscribers:
            try:
                q.put_nowait(payload)
            except asyncio.QueueFull:
                dead.add(q)
        if dead:
            logger.warning("Dropping %d slow subscriber(s)", len(dead))
        self._subscribers -= dead

    async def get_current_state(self) -> bytes | None:
        """Latest snapshot, from memory or (after a restart) from Redis."""
        if self._latest is not None:
            return self._latest
        if self._redis:
            try:
                return await self._redis.get(STATE_KEY)
            except Exception:
                logger.exception("Failed to get state from Redis")
        return None

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=10)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)
