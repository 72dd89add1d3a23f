from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Dict

import redis.asyncio as redis

logger = logging.getLogger("abg.events")


class EventBus:
    """Fans activity events out to SSE subscribers, across processes when REDIS_URL is set."""

    def __init__(self, redis_url: str | None = None, channel: str = "abg:recruitment") -> None:
        self._subscribers: set[asyncio.Queue[str]] = set()
        self._lock = asyncio.Lock()
        self._redis_url = (redis_url if redis_url is not None else os.environ.get("REDIS_URL", "")).strip()
        self._redis: redis.Redis | None = None
        self._redis_lock = asyncio.Lock()
        self._listener_task: asyncio.Task | None = None
        self._channel = channel

    async def _broadcast(self, data: str) -> None:
        async with self._lock:
            for queue in list(self._subscribers):
                if queue.full():
                    # Slow consumer: drop its oldest message.
                    queue.get_nowait()
                queue.put_nowait(data)

    async def _ensure_redis(self) -> bool:
        if not self._redis_url:
            return False
        if self._redis is None:
            async with self._redis_lock:
                if self._redis is None:
                    self._redis = redis.from_url(self._redis_url, decode_responses=True)
        await self._ensure_listener()
        return True

    async def _ensure_listener(self) -> None:
        if self._listener_task and not self._listener_task.done():
            return
        self._listener_task = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        if not self._redis:
            return
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if not message or message.get("type") != "message":
                    continue
                data = message.get("data")
                if isinstance(data, bytes):
                    data = data.decode()
                if not isinstance(data, str):
                    continue
                await self._broadcast(data)
        finally:
            await pubsub.close()

    async def subscribe(self) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=200)
        async with self._lock:
            self._subscribers.add(queue)
        await self._ensure_redis()
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[str]) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def publish(self, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
        if await self._ensure_redis() and self._redis:
            try:
                await self._redis.publish(self._channel, data)
                return
            except redis.RedisError:
                logger.warning("event_bus_redis_publish_failed", exc_info=True)
        await self._broadcast(data)

    async def close(self) -> None:
        if self._listener_task:
            self._listener_task.cancel()
            self._listener_task = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


event_bus = EventBus()
