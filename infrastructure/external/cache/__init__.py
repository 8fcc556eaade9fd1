"""Redis 连接：实时事件的跨进程 pub/sub 通道"""
from .redis_client import (
    RedisClient,
    init_redis_client,
    get_redis_client,
    shutdown_redis_client,
)


__all__ = [
    "RedisClient",
    "init_redis_client",
    "get_redis_client",
    "shutdown_redis_client",
]
