"""Redis Pub/Sub based RealtimeBrokerPort implementation.

Reuses the shared RedisClient from infrastructure.external.cache. Rooms map
to channels ``rt:all`` and ``rt:group:{identity}``; every process
pattern-subscribes ``rt:*`` and routes by the envelope's room.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from application.ports.realtime import Envelope, RealtimeBrokerPort, Handler
from core.logging_config import get_logger
from infrastructure.external.cache import get_redis_client, RedisClient


logger = get_logger(__name__)

_CHANNEL_PREFIX = "rt:"
_PATTERN = "rt:*"


class RedisRealtimeBroker(RealtimeBrokerPort):
    def __init__(self, client: Optional[RedisClient] = None) -> None:
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._handler: Optional[Handler] = None
        self._client: Optional[RedisClient] = client

    @staticmethod
    def _room_channel(room: str) -> str:
        return f"{_CHANNEL_PREFIX}{room}"

    async def _ensure_client(self) -> RedisClient:
        if self._client is None:
            self._client = await get_redis_client()
        return self._client

    async def publish(self, room: str, envelope: Envelope) -> None:  # type: ignore[override]
        client = await self._ensure_client()
        if envelope.room != room:
            envelope = envelope.model_copy(update={"room": room})
        channel = self._room_channel(room)
        try:
            await client.publish(channel, envelope.model_dump(mode="json"))
        except RedisError as exc:
            # 广播失败不影响已完成的存储操作；客户端重连时会重新对账
            logger.error("redis_publish_failed", channel=channel, error=str(exc))

    async def _listen(self) -> None:
        assert self._client is not None and self._handler is not None
        try:
            logger.info("redis_pubsub_subscribed", pattern=_PATTERN)
            async for message in self._client.psubscribe(_PATTERN):
                if self._stopping.is_set():
                    break
                data = message.get("data")  # already deserialized (dict)
                if not isinstance(data, dict):
                    continue
                try:
                    env = Envelope.model_validate(data)
                except ValidationError as exc:
                    logger.warning("redis_pubsub_parse_failed", error=str(exc))
                    continue
                try:
                    await self._handler(env)
                except Exception as exc:  # pragma: no cover
                    logger.warning("redis_pubsub_handler_failed", room=env.room, error=str(exc))
        except asyncio.CancelledError:
            raise
        except RedisError as exc:  # pragma: no cover
            logger.error("redis_pubsub_listen_failed", error=str(exc))

    async def subscribe(self, handler: Handler) -> None:  # type: ignore[override]
        self._handler = handler
        await self._ensure_client()
        self._task = asyncio.create_task(self._listen(), name="redis-realtime-listener")

    async def aclose(self) -> None:  # type: ignore[override]
        self._stopping.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._client = None
