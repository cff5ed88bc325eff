"""
订单级互斥锁 - 串行化同一订单的退款

配置了 Redis 时使用分布式锁，否则使用进程内 asyncio.Lock。
"""
from __future__ import annotations

import asyncio
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator

from application.ports.locks import OrderLockUnavailable
from core.logging_config import get_logger
from infrastructure.external.cache.redis_client import RedisClient


logger = get_logger(__name__)


class InProcessOrderLocks:
    """单进程部署使用的订单锁"""

    def __init__(self, blocking_timeout: float = 5.0) -> None:
        self._blocking_timeout = blocking_timeout
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, order_id: str) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[order_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, order_id: str) -> AsyncIterator[None]:
        lock = self._lock_for(order_id)
        if self._blocking_timeout <= 0:
            if lock.locked():
                raise OrderLockUnavailable(order_id)
            await lock.acquire()
        else:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._blocking_timeout)
            except asyncio.TimeoutError as exc:
                raise OrderLockUnavailable(order_id) from exc
        try:
            yield
        finally:
            lock.release()


class RedisOrderLocks:
    """多实例部署使用的分布式订单锁"""

    def __init__(self, redis: RedisClient, timeout: float = 30, blocking_timeout: float = 5.0) -> None:
        self._redis = redis
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, order_id: str) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            try:
                await stack.enter_async_context(
                    self._redis.lock(
                        f"refund:order:{order_id}",
                        timeout=self._timeout,
                        blocking_timeout=self._blocking_timeout,
                    )
                )
            except TimeoutError as exc:
                logger.warning("order_lock_timeout", order_id=order_id)
                raise OrderLockUnavailable(order_id) from exc
            yield
