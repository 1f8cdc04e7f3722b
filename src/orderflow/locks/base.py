"""
Lock primitives shared by the lock managers.

The sagas only depend on ``LockManager.acquire(key, timeout=...)`` as an
async context manager; the backing implementation decides whether the lock
is process-local or shared through the database.
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from orderflow.exceptions import OrderFlowError


@dataclass(frozen=True)
class LockInfo:
    """
    Information about an acquired lock.

    Attributes:
        key: The string key used to identify the lock
        lock_id: Numeric lock id (advisory lock id, 0 for in-memory locks)
        acquired_at: When the lock was acquired
        holder_id: Optional identifier for the lock holder (for debugging)
    """

    key: str
    lock_id: int
    acquired_at: datetime
    holder_id: str | None = None


class LockAcquisitionError(OrderFlowError):
    """
    Raised when a lock cannot be acquired.

    Attributes:
        key: The lock key that could not be acquired
        reason: Description of why acquisition failed
        timeout: The timeout value if timeout was the cause
    """

    def __init__(
        self,
        key: str,
        reason: str,
        timeout: float | None = None,
    ):
        self.key = key
        self.reason = reason
        self.timeout = timeout
        super().__init__(f"Failed to acquire lock '{key}': {reason}")


@runtime_checkable
class LockManager(Protocol):
    """Protocol for exclusive keyed locks."""

    def acquire(
        self, key: str, *, timeout: float | None = None
    ) -> AbstractAsyncContextManager[LockInfo]:
        """
        Hold the lock for ``key`` for the duration of the context.

        Raises:
            LockAcquisitionError: If the lock is not acquired within timeout
        """
        ...

    async def is_held(self, key: str) -> bool: ...


def order_lock_key(order_id: UUID) -> str:
    """
    Lock key serializing every mutation of one order.

    Example:
        >>> async with lock_manager.acquire(order_lock_key(order.id), timeout=10):
        ...     await ship(order)
    """
    return f"order:{order_id}"


def report_lock_key(jurisdiction: str, period_start: date, period_end: date) -> str:
    """Lock key serializing report generation for one (jurisdiction, period)."""
    return f"report:{jurisdiction}:{period_start.isoformat()}:{period_end.isoformat()}"


__all__ = [
    "LockAcquisitionError",
    "LockInfo",
    "LockManager",
    "order_lock_key",
    "report_lock_key",
]
