"""
Redis客户端 - 命名空间隔离的分布式锁
"""
from __future__ import annotations

import socket
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from redis import asyncio as aioredis
from redis.exceptions import LockError, RedisError

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Redis客户端封装

    特性:
    - 命名空间隔离
    - 分布式锁支持
    """

    def __init__(
        self,
        client: aioredis.Redis,
        namespace: str = "",
    ):
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        """格式化键名，添加命名空间前缀"""
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"


    @asynccontextmanager
    async def lock(
        self,
        key: str,
        timeout: float = 10,
        blocking_timeout: float = 5,
    ):
        """
        分布式锁上下文管理器

        Args:
            key: 锁的键名
            timeout: 锁的超时时间（秒）
            blocking_timeout: 获取锁的等待时间（秒）

        Raises:
            TimeoutError: 在 blocking_timeout 内未获取到锁
        """
        lock_key = f"lock:{self._format_key(key)}"
        lock = self._client.lock(
            lock_key,
            timeout=timeout,
            blocking_timeout=blocking_timeout,
            thread_local=False,
        )

        started = time.monotonic()
        acquired = await lock.acquire()
        if not acquired:
            raise TimeoutError(f"获取锁失败: {lock_key}")
        logger.debug("redis_lock_acquired", key=lock_key, waited=round(time.monotonic() - started, 3))
        try:
            yield lock
        finally:
            try:
                await lock.release()
            except LockError as e:
                # 锁已过期被他人持有
                logger.error("redis_lock_release_failed", key=lock_key, error=str(e))

    async def health_check(self) -> bool:
        """健康检查"""
        try:
            return await self._client.ping()
        except RedisError as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def client(self) -> aioredis.Redis:
        """获取原始Redis客户端（谨慎使用）"""
        return self._client


def _keepalive_options() -> dict:
    # 构建跨平台 keepalive 选项（若可用）
    if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
        return {
            socket.TCP_KEEPIDLE: 1,
            socket.TCP_KEEPINTVL: 1,
            socket.TCP_KEEPCNT: 3,
        }
    return {}


async def create_redis_client(
    url: Optional[str] = None,
    namespace: Optional[str] = None,
    client_factory: Callable[..., aioredis.Redis] = aioredis.from_url,
    **kwargs,
) -> RedisClient:
    """
    创建Redis客户端实例（由应用启动时创建并注入，非全局单例）

    Args:
        url: Redis连接地址，默认读取 settings.redis.url
        namespace: 命名空间，默认读取 settings.redis.namespace
        client_factory: 底层连接工厂
        **kwargs: 其他Redis连接参数
    """
    url = url or settings.redis.url
    if not url:
        raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

    client = client_factory(
        url,
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

    logger.info("redis_client_initialized", namespace=namespace or settings.redis.namespace)
    return RedisClient(
        client=client,
        namespace=namespace or settings.redis.namespace,
    )
