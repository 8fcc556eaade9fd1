"""
Redis客户端 - 发布/订阅（实时广播通道）
"""
from __future__ import annotations

import asyncio
import json
import socket
from typing import Any, AsyncGenerator, Callable, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisClient:
    """
    Redis客户端封装

    特性:
    - 命名空间隔离（频道名自动加前缀）
    - 自动 JSON 序列化/反序列化
    - 模式订阅（psubscribe）
    """

    def __init__(
        self,
        client: aioredis.Redis,
        namespace: str = "",
        serializer: Optional[Callable] = None,
        deserializer: Optional[Callable] = None,
    ):
        self._client = client
        self._namespace = namespace.strip(":")
        self._serializer = serializer or self._default_serializer
        self._deserializer = deserializer or self._default_deserializer

    # ============= 工具方法 =============

    def _format_key(self, key: str) -> str:
        """格式化键名，添加命名空间前缀"""
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    def _strip_namespace(self, key: str) -> str:
        if self._namespace and key.startswith(f"{self._namespace}:"):
            return key[len(self._namespace) + 1:]
        return key

    @staticmethod
    def _default_serializer(value: Any) -> str:
        if isinstance(value, (str, int, float)):
            return str(value)
        return json.dumps(value, default=str, ensure_ascii=False)

    @staticmethod
    def _default_deserializer(value: Optional[str]) -> Any:
        if value is None:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value

    # ============= 发布/订阅 =============

    async def publish(self, channel: str, message: Any) -> int:
        """发布消息到频道，返回接收消息的订阅者数量"""
        formatted_channel = self._format_key(channel)
        try:
            return await self._client.publish(formatted_channel, self._serializer(message))
        except RedisError as e:
            logger.error("redis_publish_failed", channel=formatted_channel, error=str(e))
            raise

    async def _listen(self, pubsub) -> AsyncGenerator[Dict[str, Any], None]:
        async for message in pubsub.listen():
            if message["type"] not in ("message", "pmessage"):
                continue
            yield {
                "channel": self._strip_namespace(message["channel"]),
                "data": self._deserializer(message["data"]),
                "pattern": message.get("pattern"),
            }

    async def psubscribe(self, *patterns: str) -> AsyncGenerator[Dict[str, Any], None]:
        """模式订阅（如 ``rt:*``），返回消息生成器"""
        formatted_patterns = [self._format_key(p) for p in patterns]
        pubsub = self._client.pubsub()
        try:
            await pubsub.psubscribe(*formatted_patterns)
            async for message in self._listen(pubsub):
                yield message
        finally:
            await pubsub.punsubscribe(*formatted_patterns)
            await pubsub.aclose()

    @property
    def client(self) -> aioredis.Redis:
        """获取原始Redis客户端（谨慎使用）"""
        return self._client


# ============= 单例模式管理 =============

_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisClient] = None
_lock = asyncio.Lock()


def _keepalive_options() -> dict:
    # 构建跨平台 keepalive 选项（若可用）
    if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
        return {
            socket.TCP_KEEPIDLE: 1,
            socket.TCP_KEEPINTVL: 1,
            socket.TCP_KEEPCNT: 3,
        }
    return {}


async def init_redis_client(namespace: Optional[str] = None, **kwargs) -> RedisClient:
    """初始化全局Redis客户端（幂等）"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=_keepalive_options(),
            **kwargs,
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error("redis_init_failed", error=str(e))
            await client.aclose()
            raise

        _redis_client = client
        _cache_instance = RedisClient(
            client=client,
            namespace=namespace if namespace is not None else settings.redis.namespace,
        )
        logger.info("redis_client_initialized", max_connections=settings.redis.max_connections)
        return _cache_instance


async def get_redis_client() -> RedisClient:
    """获取全局Redis客户端实例"""
    if _cache_instance is None:
        return await init_redis_client()
    return _cache_instance


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_client_closed")
        except RedisError as e:
            logger.error("redis_close_failed", error=str(e))
        finally:
            _redis_client = None
            _cache_instance = None


__all__ = [
    "RedisClient",
    "init_redis_client",
    "get_redis_client",
    "shutdown_redis_client",
]
