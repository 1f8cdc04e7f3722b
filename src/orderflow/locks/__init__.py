"""
Keyed exclusive locks for orderflow.

The fulfillment saga and STAKE call logging hold ``order:{id}``; report
generation holds ``report:{J}:{start}:{end}``.

Example:
    >>> from orderflow.locks import InMemoryLockManager, order_lock_key
    >>>
    >>> locks = InMemoryLockManager()
    >>> try:
    ...     async with locks.acquire(order_lock_key(order_id), timeout=5.0):
    ...         await ship()
    ... except LockAcquisitionError:
    ...     print("Order is being processed elsewhere")
"""

from orderflow.locks.base import (
    LockAcquisitionError,
    LockInfo,
    LockManager,
    order_lock_key,
    report_lock_key,
)
from orderflow.locks.memory import InMemoryLockManager
from orderflow.locks.postgresql import PostgreSQLLockManager

__all__ = [
    "InMemoryLockManager",
    "LockAcquisitionError",
    "LockInfo",
    "LockManager",
    "PostgreSQLLockManager",
    "order_lock_key",
    "report_lock_key",
]
