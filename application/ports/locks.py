"""Per-order lock port used to serialize refunds of one order."""
from __future__ import annotations

from typing import AsyncContextManager, Protocol, runtime_checkable


class OrderLockUnavailable(Exception):
    """The lock for an order could not be acquired in time."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order lock unavailable: {order_id}")


@runtime_checkable
class OrderLockManager(Protocol):
    def hold(self, order_id: str) -> AsyncContextManager[None]:
        """Hold the order lock for the body of an ``async with``.

        Raises OrderLockUnavailable when the lock is not acquired within the
        implementation's blocking timeout.
        """
        ...
